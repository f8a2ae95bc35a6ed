"""Standalone document ingestion runner (CLI-invokable).

Usage:
    python -m ingestion.pipeline --file-path path/to/document.pdf

Instantiates the services directly (not via FastAPI Depends, runs outside
the HTTP context) and ingests one PDF or TXT file into the knowledge
base via ``asyncio.run()``.

Exit codes:
    0 - success
    1 - failure (error printed to stderr)
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path


async def run_ingestion(file_path: str, replace: bool = False) -> int:
    """Extract, chunk, embed and store one file. Returns the chunk count."""
    # Late imports so module-level code doesn't trigger config loading
    # when just importing the module (e.g., for testing)
    from app.db.database import async_session_factory, init_db
    from app.services.llm.gateway import LLMGateway
    from app.services.rag.parsing import extract_text_async
    from app.services.rag.retrieval import RetrievalStore
    from app.services.settings import CredentialResolver

    filepath = Path(file_path)
    filename = filepath.name

    await init_db()
    gateway = LLMGateway(CredentialResolver(async_session_factory))
    text = await extract_text_async(filename, filepath.read_bytes())

    print(f"[ingestion] File: {file_path} ({len(text)} characters)")

    async with async_session_factory() as session:
        store = RetrievalStore(db=session, embedder=gateway)
        if replace:
            removed = await store.delete_document(filename)
            print(f"[ingestion] Removed {removed} existing chunk(s) for {filename}")
        chunks = await store.ingest(filename, text)
        await session.commit()
        total = await store.count_chunks()

    print(f"[ingestion] ✓ Stored {chunks} chunk(s) for {filename}")
    print(f"[ingestion] Knowledge base now holds {total} chunk(s)")
    return chunks


def main() -> None:
    """CLI entrypoint with argument parsing."""
    parser = argparse.ArgumentParser(
        description="DeskChat knowledge base ingestion CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m ingestion.pipeline --file-path docs/catalogo.pdf\n"
            "  python -m ingestion.pipeline --file-path docs/faq.txt --replace\n"
        ),
    )
    parser.add_argument(
        "--file-path",
        required=True,
        help="Path to document file (pdf or txt)",
    )
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Delete chunks previously ingested under the same filename first",
    )
    args = parser.parse_args()

    if not Path(args.file_path).exists():
        print(f"[error] File not found: {args.file_path}", file=sys.stderr)
        sys.exit(1)

    from app.core.exceptions import DeskChatError

    try:
        asyncio.run(run_ingestion(file_path=args.file_path, replace=args.replace))
    except DeskChatError as e:
        print(f"[error] {e.code}: {e.message}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"[error] Ingestion failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
