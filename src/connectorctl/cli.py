from __future__ import annotations

import asyncio
import gzip
import io
import json
import sys
from typing import Any, Iterator, Optional

import typer
from loguru import logger

from search_client import ElasticsearchBulkStore, InMemoryDocumentStore
from stream_connectors import (
    DeadLetterQueue,
    FlowSettings,
    WriteFlow,
    WriteRequest,
    default_item_classifier,
    elasticsearch_item_classifier,
)

from .config import get_settings

app = typer.Typer(help="stream-connectors operational CLI")

BACKENDS = ("elasticsearch", "memory")


def iter_lines(path: str) -> Iterator[tuple[int, str]]:
    """Yield (line number, text) for non-blank lines; '-' for stdin, .gz supported."""
    if path == "-":
        fh: io.TextIOBase = sys.stdin  # type: ignore[assignment]
        close = False
    elif path.endswith(".gz"):
        fh = io.TextIOWrapper(gzip.open(path, "rb"), encoding="utf-8")
        close = True
    else:
        fh = open(path, "r", encoding="utf-8")
        close = True
    try:
        for n, line in enumerate(fh, start=1):
            line = line.strip()
            if line:
                yield n, line
    finally:
        if close:
            fh.close()


def iter_ndjson(path: str) -> Iterator[dict[str, Any]]:
    """Yield JSON objects from an NDJSON file."""
    for _, line in iter_lines(path):
        yield json.loads(line)


def to_request(obj: dict[str, Any], lineno: int) -> WriteRequest[int]:
    """``{"id": ..., "source": {...}?, "version": n?}``; no source means delete."""
    if not isinstance(obj, dict) or "id" not in obj:
        raise typer.BadParameter(f"line {lineno}: missing 'id'")
    return WriteRequest(
        id=str(obj["id"]),
        payload=obj.get("source"),
        expected_version=obj.get("version"),
        pass_through=lineno,
    )


@app.command("index")
def index(
    path: str = typer.Argument(..., help="NDJSON file or '-' for stdin (.gz ok)"),
    index_name: str = typer.Option(..., "--index", help="Target index"),
    backend: str = typer.Option("elasticsearch", "--backend", help="elasticsearch|memory"),
    batch_size: int = typer.Option(10, "--batch-size", help="Max items per bulk call"),
    max_retry: int = typer.Option(100, "--max-retry", help="Retry budget per item"),
    retry_interval: float = typer.Option(5.0, "--retry-interval", help="Seconds between retries"),
    partial_retry: bool = typer.Option(
        True, "--partial-retry/--no-partial-retry", help="Retry per-item transient failures"
    ),
    dlq_path: Optional[str] = typer.Option(None, "--dlq", help="NDJSON dead letter file"),
):
    """Write an NDJSON file of documents through a write flow."""
    if backend not in BACKENDS:
        raise typer.BadParameter(f"backend must be one of: {', '.join(BACKENDS)}")
    try:
        settings = FlowSettings(
            batch_size=batch_size,
            max_retry=max_retry,
            retry_interval=retry_interval,
            retry_on_partial_failure=partial_retry,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e))

    summary = asyncio.run(_index(path, index_name, backend, settings, dlq_path))
    typer.echo(json.dumps(summary, indent=2))
    if summary["failed"]:
        logger.error(f"{summary['failed']} document(s) failed, see output")
        raise typer.Exit(code=1)


async def _index(
    path: str,
    index_name: str,
    backend: str,
    settings: FlowSettings,
    dlq_path: Optional[str],
) -> dict[str, Any]:
    cfg = get_settings()
    if backend == "memory":
        store: Any = InMemoryDocumentStore()
        classifier = default_item_classifier
    else:
        store = ElasticsearchBulkStore.from_url(
            cfg.ELASTICSEARCH_URL,
            index_name,
            api_key=cfg.ELASTICSEARCH_API_KEY,
            request_timeout=cfg.REQUEST_TIMEOUT,
        )
        classifier = elasticsearch_item_classifier

    dlq_path = dlq_path or cfg.DLQ_PATH
    dlq = DeadLetterQueue[WriteRequest](dlq_path) if dlq_path else None
    invalid: list[dict[str, Any]] = []

    def requests() -> Iterator[WriteRequest[int]]:
        for n, line in iter_lines(path):
            obj: Any = None
            try:
                obj = json.loads(line)
                request = to_request(obj, n)
            except json.JSONDecodeError as e:
                _skip(invalid, n, None, f"line {n}: {e}")
            except typer.BadParameter as e:
                _skip(invalid, n, obj.get("id") if isinstance(obj, dict) else None, e.message)
            else:
                yield request

    committed: list[int] = []
    logger.info(f"Indexing {path} into {index_name} ({backend})")
    try:
        async with WriteFlow(
            store, settings, classifier=classifier, dlq=dlq, flow_id=index_name
        ) as flow:
            summary = await flow.write_all(requests(), commit=committed.append)
    finally:
        if backend == "elasticsearch":
            await store.aclose()

    return {
        "total": summary.total + len(invalid),
        "succeeded": summary.succeeded,
        "failed": summary.failed + len(invalid),
        "last_committed_line": max(committed) if committed else None,
        "failures": sorted(
            [
                {"line": r.pass_through, "id": r.request.id, "reason": r.outcome.reason.value, "error": r.error}
                for r in summary.failures
            ]
            + invalid,
            key=lambda f: f["line"],
        ),
    }


def _skip(invalid: list[dict[str, Any]], lineno: int, doc_id: Any, error: str) -> None:
    logger.error(f"Skipping {error}")
    invalid.append({"line": lineno, "id": doc_id, "reason": "invalid_input", "error": error})


@app.command("dlq")
def show_dlq(
    path: str = typer.Argument(..., help="Dead letter NDJSON file"),
    limit: int = typer.Option(100, "--limit", help="Max records to print"),
):
    """Print dead letter records."""
    dlq = DeadLetterQueue(path, mkdirs=False)
    records = asyncio.run(dlq.replay(limit))
    for rec in records:
        typer.echo(
            json.dumps(
                {"ts": rec.ts, "error": rec.error, "items": rec.items, "metadata": rec.metadata},
                default=str,
            )
        )
    logger.info(f"{len(records)} DLQ record(s) in {path}")


if __name__ == "__main__":
    app()
