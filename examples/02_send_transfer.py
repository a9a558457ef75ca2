"""Example: send an ERC-20 transfer and wait for its receipt."""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from erc20 import ERC20_ABI

from ethguard import (
    AbiCodec,
    BroadcastError,
    CallRequest,
    ChainClient,
    ClientConfig,
    ConfirmationTimeout,
    LocalSigner,
    TransactionReverted,
    serialise_receipt,
)

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

AMOUNT = 1_000_000


def main() -> None:
    """Transfer ``AMOUNT`` base units of ``TOKEN_ADDRESS`` to ``RECIPIENT_ADDRESS``."""

    private_key = os.getenv("PRIVATE_KEY")
    if not private_key:
        raise ValueError("PRIVATE_KEY not found in environment variables")
    token = os.getenv("TOKEN_ADDRESS")
    if not token:
        raise ValueError("TOKEN_ADDRESS not found in environment variables")
    recipient = os.getenv("RECIPIENT_ADDRESS")
    if not recipient:
        raise ValueError("RECIPIENT_ADDRESS not found in environment variables")
    rpc_url = os.getenv("RPC_URL", "https://rpc.hyperliquid-testnet.xyz/evm")

    client = ChainClient(
        ClientConfig(endpoints=[rpc_url]),
        codec=AbiCodec(ERC20_ABI),
        signer=LocalSigner(private_key),
    )
    client.connect()
    try:
        print(f"Transferring {AMOUNT} units of {token} to {recipient}")
        result = client.write(CallRequest.of(token, "transfer", recipient, AMOUNT))
        print(f"Confirmed: {result.tx_hash} after {len(result.attempts)} broadcast(s)")
        if result.receipt is not None:
            print("Receipt:", serialise_receipt(result.receipt.raw))
    except TransactionReverted as exc:
        print(f"Transfer reverted: {exc.reason or 'no reason given'}")
    except ConfirmationTimeout as exc:
        print(f"Transfer {exc.tx_hash} not mined within {exc.timeout}s")
    except BroadcastError as exc:
        print(f"Broadcast failed: {exc}")
        print("Details:", exc.details)
    finally:
        client.disconnect()


if __name__ == "__main__":
    main()
