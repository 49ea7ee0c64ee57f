"""Command line interface for checking a provider's RPC endpoint"""
import sys

from . import EthereumRPC, NodeConnectionError, NodeAuthError, JSONRPCError

def check_provider(url: str):
    """Query a few read-only methods against a provider"""
    rpc = EthereumRPC(url)
    try:
        print("\nChecking provider:")
        print("-" * 50)

        print(f"1. net_version: {rpc.net_version()}")

        head = rpc.get_block_number()
        print(f"2. eth_blockNumber: {head}")

        print(f"3. head block timestamp: {rpc.get_block_timestamp(head)}")

    except NodeConnectionError as e:
        print("\nFailed to connect to provider:")
        print(f"  {str(e)}")

    except NodeAuthError as e:
        print("\nAuthentication failed:")
        print(f"  {str(e)}")

    except JSONRPCError as e:
        print(f"\nRPC Error [{e.code}] in {e.method}:")
        print(f"  {str(e)}")

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python -m rpc <provider-url>")
        sys.exit(1)
    check_provider(sys.argv[1])
