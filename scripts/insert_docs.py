# scripts/insert_docs.py
"""
Embed every .txt file under DOCS_DIR (default ./documents) and insert it into
the DashVector collection. The document id is the file name without extension.

A failing file is reported and skipped; the exit code is 1 if any file failed
or nothing could be processed, 0 otherwise.
"""
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List

from master_trainer.services.knowledge_base import (
    DashScopeEmbeddings,
    DashVectorClient,
    KnowledgeBaseError,
)


def collect_files(docs_dir: Path) -> List[Path]:
    return sorted(p for p in docs_dir.glob("*.txt") if p.is_file())


async def insert_file(path: Path, embeddings: DashScopeEmbeddings, store: DashVectorClient) -> None:
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        raise KnowledgeBaseError(f"{path} is empty")

    print("  Generating embedding...")
    vector = (await embeddings.embed([text]))[0]
    print(f"  Embedding generated successfully. Length: {len(vector)}")

    doc_id = path.stem
    print(f"  Inserting into collection '{store.collection}' with ID: {doc_id}")
    result = await store.insert_docs([{"id": doc_id, "vector": vector, "text": text}])
    print(f"  Insert successful. Result: {result}")


async def main(
    docs_dir: str = None,
    embeddings: DashScopeEmbeddings = None,
    store: DashVectorClient = None,
) -> int:
    docs_path = Path(docs_dir or os.getenv("DOCS_DIR", "./documents"))
    embeddings = embeddings or DashScopeEmbeddings()
    store = store or DashVectorClient()

    if not docs_path.is_dir():
        print(f"Documents directory not found: {docs_path}")
        return 1
    files = collect_files(docs_path)
    if not files:
        print(f"No .txt files in {docs_path}")
        return 1

    print(f"Starting to process {len(files)} files...")
    failed = 0
    for path in files:
        print(f"Processing file: {path}")
        try:
            await insert_file(path, embeddings, store)
        except (KnowledgeBaseError, OSError) as exc:
            failed += 1
            print(f"Error processing file {path}: {exc}")
            continue
        print(f"File processed successfully: {path}\n")

    print(f"All files processed. failed={failed}")
    return 1 if failed else 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(asyncio.run(main()))
