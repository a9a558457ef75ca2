"""Example: follow new blocks and decode token transfers agreed on by every endpoint."""

from __future__ import annotations

import logging
import os
import time

from dotenv import load_dotenv
from erc20 import ERC20_ABI

from ethguard import (
    AbiCodec,
    BlockInconsistency,
    ChainClient,
    ClientConfig,
    SelectorParser,
    UnsupportedTransactionType,
)

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

POLL_SECONDS = 2.0


def main() -> None:
    """Print every ERC-20 ``transfer`` call seen in new blocks."""

    endpoints = os.getenv("RPC_ENDPOINTS")
    if not endpoints:
        raise ValueError("RPC_ENDPOINTS not found in environment variables")

    parser = SelectorParser(AbiCodec(ERC20_ABI), {"transfer": lambda args: args})
    client = ChainClient(ClientConfig(endpoints=endpoints.split(",")), parser=parser)
    client.connect()
    try:
        height = client.current_height()
        while True:
            if client.current_height() < height:
                time.sleep(POLL_SECONDS)
                continue
            try:
                block = client.fetch_block(height)
            except BlockInconsistency as exc:
                print(f"Endpoints disagree on block {height} (source {exc.source_index}), retrying")
                time.sleep(POLL_SECONDS)
                continue
            except UnsupportedTransactionType as exc:
                print(f"Skipping block {height}: transaction type {exc.tx_type} is not supported")
                height += 1
                continue
            for tx in block.transactions:
                print(f"[{height}] {tx.sender} -> {tx.to}: {tx.data}")
            height += 1
    except KeyboardInterrupt:
        print("Stopped")
    finally:
        client.disconnect()


if __name__ == "__main__":
    main()
