"""Example: read an ERC-20 balance with retries spread over several endpoints."""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from erc20 import ERC20_ABI

from ethguard import AbiCodec, CallRequest, ChainClient, ClientConfig, EthGuardError, scale_units

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def main() -> None:
    """Print the token balance of ``OWNER_ADDRESS``."""

    endpoints = os.getenv("RPC_ENDPOINTS", "https://rpc.hyperliquid-testnet.xyz/evm").split(",")
    token = os.getenv("TOKEN_ADDRESS")
    if not token:
        raise ValueError("TOKEN_ADDRESS not found in environment variables")
    owner = os.getenv("OWNER_ADDRESS")
    if not owner:
        raise ValueError("OWNER_ADDRESS not found in environment variables")

    client = ChainClient(ClientConfig(endpoints=endpoints), codec=AbiCodec(ERC20_ABI))
    client.connect()
    try:
        symbol = client.read(CallRequest.of(token, "symbol"))
        decimals = client.read(CallRequest.of(token, "decimals"))
        balance = client.read(CallRequest.of(token, "balanceOf", owner))
        print(f"{owner} holds {scale_units(balance, decimals)} {symbol}")
    except EthGuardError as exc:
        print(f"Read failed: {exc}")
        if exc.details:
            print("Details:", exc.details)
    finally:
        client.disconnect()


if __name__ == "__main__":
    main()
