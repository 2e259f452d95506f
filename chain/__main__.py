"""Command line interface for checking the chain event service connection"""
import sys

from config import get_settings
from . import ChainRPC, ContractClient, NodeConnectionError, NodeAuthError, ChainRPCError
from .events import ARC72_TRANSFER, ARC200_TRANSFER, MP_LIST

def test_rpc(contract_id: int = 0):
    """Probe the event service and, optionally, one contract"""
    rpc = ChainRPC.from_settings(get_settings())
    try:
        print("\nTesting event service:")
        print("-" * 50)

        print("1. Testing getstatus:")
        status = rpc.getstatus()
        last_round = status['last-round']
        print(f"  Success! Current round: {last_round}")

        if not contract_id:
            return

        client = ContractClient(rpc, contract_id)

        print(f"\n2. Testing getapplication for {contract_id}:")
        info = client.application_info()
        print(f"  Success! Creator: {info.creator}, created at round {info.create_round}")
        print(f"  Global state keys: {len(info.global_state)}")

        print(f"\n3. Testing getevents for round {last_round}:")
        events = client.get_events([ARC72_TRANSFER, ARC200_TRANSFER, MP_LIST], last_round, last_round)
        for name, records in events.items():
            print(f"  {name}: {len(records)} events")

    except NodeConnectionError as e:
        print("\nFailed to connect to event service:")
        print(f"  {str(e)}")

    except NodeAuthError as e:
        print("\nAuthentication failed:")
        print(f"  {str(e)}")
        print("\nPlease check node_user and node_password in settings.conf")

    except ChainRPCError as e:
        print(f"\nEvent service error [{e.code}] in {e.method}:")
        print(f"  {str(e)}")

if __name__ == "__main__":
    test_rpc(int(sys.argv[1]) if len(sys.argv) > 1 else 0)
