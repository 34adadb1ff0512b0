"""Simple connectivity check for the MongoDB used by the relay.
Run this after starting MongoDB to verify Motor can connect:

    python -m chatrelay.check_mongo
"""
import asyncio
import sys

from pymongo.errors import PyMongoError

from .config import settings
from .stores import Mongo


async def main() -> int:
    print('Using MONGODB_URI=', settings.mongodb_uri)
    mongo = Mongo(settings)
    try:
        # list databases as a quick probe
        dbs = await mongo.client.list_database_names()
        print('Connected to MongoDB, databases:', dbs)
        return 0
    except PyMongoError as e:
        print('Connection failed:', e)
        return 1
    finally:
        mongo.close()


if __name__ == '__main__':
    sys.exit(asyncio.run(main()))
