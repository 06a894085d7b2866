#!/usr/bin/env python
"""
Document ingestion worker

Usage:
  cd backend && python -m scripts.rag_worker

Needs Redis; set RAG_USE_QUEUE=true so the API enqueues jobs.
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from redis import Redis
from rq import Queue, Worker

from infra.redis.service import get_url
from rag.tasks import QUEUE_NAME


def main():
    conn = Redis.from_url(get_url())
    queue = Queue(QUEUE_NAME, connection=conn)

    print(f"[RAG Worker] listening on queue: {QUEUE_NAME} (Ctrl+C to quit)")
    worker = Worker([queue], connection=conn)
    worker.work()


if __name__ == "__main__":
    main()
