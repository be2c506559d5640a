"""
Seed Data Script - Creates sample identities and the "Sample Request" workflow
Run: python -m scripts.seed_data
"""
from stepflow.repositories.mongo_client import create_indexes
from stepflow.repositories.identity_repo import IdentityRepository
from stepflow.repositories.template_repo import TemplateRepository
from stepflow.services.seed_service import seed_sample_data
from stepflow.utils.jwt import create_access_token
from stepflow.utils.logger import setup_logging


def main():
    setup_logging()
    print("=== Seeding database ===")
    print("-" * 40)

    # Create indexes first
    create_indexes()

    created = seed_sample_data(TemplateRepository(), IdentityRepository())
    if created:
        print(f"Created: {', '.join(created)}")
    else:
        print("Database already has sample data. Skipping seed.")

    print("-" * 40)
    print("Development tokens:")
    for username in ("admin", "user"):
        print(f"  {username}: Bearer {create_access_token(username)}")
    print("Done!")


if __name__ == "__main__":
    main()
