"""Command line interface for testing configuration loading"""
from pathlib import Path

from . import get_settings

def main():
    """Display loaded configuration"""
    settings = get_settings()

    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings.items():
        if key in ('node_password',) and value:
            value = '********'
        print(f"{key}: {value}")

    # Save example configuration file
    examples_dir = Path("examples")
    examples_dir.mkdir(exist_ok=True)

    with open(examples_dir / "settings.conf.example", "w") as f:
        f.write("""[DEFAULT]
# Database connection URL
db_url = postgresql://root@localhost:26257/defaultdb?sslmode=disable
# Chain event service JSON-RPC endpoint
node_url = http://127.0.0.1:8980
node_user =
node_password =
node_timeout = 10
# Gateway used to fetch ipfs:// token metadata
ipfs_gateway = https://ipfs.io/ipfs/
metadata_timeout = 10
# Naming resolver contract (0 disables the name overlay)
resolver_contract_id = 797608
# Contracts whose mints are recorded as history only
skip_mint_contracts = 797610
# Chain read retry policy (retry_max_tries = 0 retries indefinitely)
retry_interval = 3
retry_max_tries = 0
# Sync tuning
max_workers = 4
poll_interval = 2
start_round = 0
""")
    print(f"\nWrote {examples_dir / 'settings.conf.example'}")

if __name__ == "__main__":
    main()
