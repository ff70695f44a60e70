from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from boxstore.config import build_config
from boxstore.core.errors import AnnotationError
from boxstore.logging_setup import setup_logging
from boxstore.services.annotation_service import AnnotationService

app = typer.Typer(add_completion=False, help="boxstore annotation CLI")


def _open(folder: Path, format_id: Optional[str]) -> AnnotationService:
    config = build_config()
    service = AnnotationService(default_format=config.default_format)
    try:
        service.run(service.open_folder(folder, format_id))
    except FileNotFoundError as e:
        raise typer.BadParameter(str(e), param_hint="FOLDER")
    except KeyError as e:
        raise typer.BadParameter(str(e), param_hint="--format")
    except AnnotationError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    return service


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Host to bind to (default BOXSTORE_HOST or 127.0.0.1)"),
    port: Optional[int] = typer.Option(None, help="Port to bind to (default BOXSTORE_PORT or 5000)"),
    debug: bool = typer.Option(False, help="Enable Flask debug mode"),
):
    """Run the annotation HTTP API."""
    from boxstore.app import create_app

    config = build_config()
    flask_app = create_app(config, debug=debug)
    flask_app.run(host=host or config.host, port=port or config.port, debug=debug)


@app.command()
def stats(
    folder: Path = typer.Argument(..., help="Image folder to inspect"),
    format_id: Optional[str] = typer.Option(None, "--format", help="Annotation format: yolo, coco or ndjson"),
):
    """Print image, box and class counts for a folder as JSON."""
    setup_logging()
    service = _open(folder, format_id)
    typer.echo(json.dumps(service.stats(), indent=2))


@app.command()
def convert(
    folder: Path = typer.Argument(..., help="Image folder to convert"),
    src: str = typer.Option(..., "--src", help="Format to read"),
    dst: str = typer.Option(..., "--dst", help="Format to write"),
):
    """Read every annotation in FOLDER with --src and write it with --dst."""
    setup_logging()
    service = _open(folder, src)
    try:
        result = service.run(service.export(dst))
    except KeyError as e:
        raise typer.BadParameter(str(e), param_hint="--dst")
    except (ValueError, AnnotationError) as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    logging.getLogger("boxstore.cli").info("convert done %s", result)
    typer.echo(f"Wrote {result['boxes']} boxes for {result['images']} images as {dst}")


if __name__ == "__main__":
    app()
