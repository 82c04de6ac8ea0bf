# scripts/query_docs.py
"""
Embed the text in QUERY_FILE (default ./queries/query1.txt) and print the
QUERY_TOPK (default 3) most similar documents from the collection.
"""
import asyncio
import logging
import os
import sys
from pathlib import Path

from master_trainer.services.knowledge_base import (
    DashScopeEmbeddings,
    DashVectorClient,
    KnowledgeBaseError,
)


async def main(
    query_file: str = None,
    topk: int = None,
    embeddings: DashScopeEmbeddings = None,
    store: DashVectorClient = None,
) -> int:
    query_path = Path(query_file or os.getenv("QUERY_FILE", "./queries/query1.txt"))
    try:
        topk = topk or int(os.getenv("QUERY_TOPK", "3"))
    except ValueError:
        print("QUERY_TOPK must be an integer")
        return 1
    embeddings = embeddings or DashScopeEmbeddings()
    store = store or DashVectorClient()

    print(f"Starting query with file: {query_path}")
    try:
        query_text = query_path.read_text(encoding="utf-8").strip()
        print(f'  Query text: "{query_text[:100]}..."')

        print("  Generating embedding for query...")
        vector = (await embeddings.embed([query_text]))[0]
        print(f"  Query embedding generated successfully. Length: {len(vector)}")

        print(f"  Querying collection '{store.collection}' for top {topk} similar documents...")
        results = await store.query(vector, topk=topk)
    except (KnowledgeBaseError, OSError) as exc:
        print(f"Error during query: {exc}")
        return 1

    print("\n--- Query Results ---")
    print(f"Found {len(results)} similar documents.")
    for i, doc in enumerate(results, start=1):
        print(f"\nResult #{i}:")
        print(f"  ID: {doc['id']}")
        print(f"  Similarity Score: {doc['score']}")
        text = doc.get("text")
        print(f'  Original Text: "{text[:200]}..."' if text else "  Original Text: (No text field)")
    if not results:
        print("No similar documents found.")

    print("\nQuery completed successfully.")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(asyncio.run(main()))
