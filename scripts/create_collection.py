# scripts/create_collection.py
"""
Create the DashVector collection that holds knowledge base documents.

Configuration comes from the environment (DASHVECTOR_API_KEY,
DASHVECTOR_ENDPOINT, DASHVECTOR_COLLECTION, DASHVECTOR_DIMENSION).
Exit code 0 on success, 1 on failure.
"""
import asyncio
import logging
import sys

from master_trainer.config.settings import settings
from master_trainer.services.knowledge_base import DashVectorClient, KnowledgeBaseError


async def main(client: DashVectorClient = None) -> int:
    client = client or DashVectorClient()
    print(
        f"Creating collection '{client.collection}' "
        f"(dimension={settings.dashvector_dimension}, metric={settings.dashvector_metric})..."
    )
    try:
        result = await client.create_collection()
    except KnowledgeBaseError as exc:
        print(f"Error creating collection: {exc}")
        return 1
    print(f"Collection created: {result}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(asyncio.run(main()))
