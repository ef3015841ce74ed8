# scripts/seed_data.py
import sys
import argparse
from pathlib import Path

import requests

# Add parent directory to path so we can import app modules
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.config import settings
from app.core.logging import logger
from app.db.init_db import create_first_user, seed_catalog
from app.repositories import create_data_backend


def seed_database():
    """Seed the configured data backend with the default project, tags and first user"""
    backend = create_data_backend(settings)
    try:
        backend.init()
        with backend.session() as repos:
            create_first_user(repos, settings)
            seed_catalog(repos)
    finally:
        backend.close()


def main():
    """Main entry point for the script"""
    parser = argparse.ArgumentParser(description='Seed database for Scan Catalog API')
    parser.add_argument('--service-url', type=str, help='URL of the API service for testing')

    args = parser.parse_args()

    # Seed database
    logger.info("Seeding database...")
    seed_database()
    logger.info("Database seeded successfully.")

    # Test API if service URL provided
    if args.service_url:
        base_url = args.service_url.rstrip('/')

        # Try accessing the health check endpoint
        try:
            response = requests.get(f"{base_url}/health", timeout=settings.HTTP_TIMEOUT_SECONDS)
            if response.status_code == 200:
                logger.info(f"API health check successful: {response.json()}")
            else:
                logger.error(f"API health check failed: {response.status_code}, {response.text}")
        except requests.RequestException as e:
            logger.error(f"Error accessing API: {str(e)}")


if __name__ == "__main__":
    main()
