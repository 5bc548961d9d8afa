from __future__ import annotations

"""CLI utility to drop and recreate the Milvus document collection."""

import argparse
import asyncio

from pymilvus import connections, utility

from src.app.settings import settings


def main() -> None:
    """Reset the configured Milvus collection using app settings."""
    parser = argparse.ArgumentParser(description="Drop and recreate Milvus collection.")
    parser.add_argument(
        "--collection",
        default=settings.milvus_collection,
        help="Collection name to reset.",
    )
    args = parser.parse_args()

    connections.connect(alias="default", uri=settings.milvus_uri, token=settings.milvus_token)

    if utility.has_collection(args.collection):
        print(f"Dropping collection: {args.collection}")
        utility.drop_collection(args.collection)

    from src.app.dependencies import build_embedder
    from src.vectorstore.milvus import MilvusConfig, MilvusVectorIndex

    index = MilvusVectorIndex(
        config=MilvusConfig(
            uri=settings.milvus_uri,
            token=settings.milvus_token,
            collection=args.collection,
            consistency=settings.milvus_consistency,
            index_type=settings.milvus_index_type,
            metric_type=settings.milvus_metric_type,
            nlist=settings.milvus_nlist,
            nprobe=settings.milvus_nprobe,
        ),
        dimension=build_embedder().dimension,
    )
    asyncio.run(index.initialize())
    print(f"Recreated collection: {args.collection}")


if __name__ == "__main__":
    main()
