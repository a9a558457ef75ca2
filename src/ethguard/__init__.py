"""ethguard - reliable contract reads, writes and block fetches over EVM RPC.

This library wraps the RPC calls a chain indexer or bot makes with bounded
retries, fee escalation, confirmation deadlines and cross-source agreement
checks.
"""

from .client import ChainClient
from .codec import AbiCodec
from .config import ClientConfig, RetryPolicy, WriteConfig
from .connections import ChainPort, EndpointPool, Web3Port
from .exceptions import (
    BlockInconsistency,
    BroadcastError,
    CallError,
    ConfirmationTimeout,
    DecodingError,
    EncodingError,
    EthGuardError,
    EventSignatureMismatch,
    InvalidStartBlock,
    NetworkError,
    NoEventSignature,
    NoRevertReason,
    OperationCancelled,
    OverlappingRanges,
    ParseError,
    SigningError,
    TransactionReverted,
    UnsupportedTransactionType,
    ValidationError,
)
from .fetcher import BlockFetcher
from .parser import EventDispatcher, ProtocolParser, SelectorParser
from .ranges import BlockRange, BlockRangeSelector
from .reader import ContractReader
from .revert import decode_revert
from .signing import LocalSigner, Signer, recover_sender
from .types import (
    Address,
    BlockHeaderView,
    BlockView,
    CallRequest,
    Receipt,
    SignedTransaction,
    TransactionView,
    TxType,
    UnsignedTransaction,
    Wei,
    WriteResult,
    WriteStatus,
)
from .utils import (
    hex_to_str,
    scale_units,
    serialise_receipt,
    str_to_hex,
    tx_hash_to_id,
    tx_id_to_hash,
)
from .writer import ContractWriter

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "ChainClient",
    "ContractReader",
    "ContractWriter",
    "BlockFetcher",
    # Collaborators
    "AbiCodec",
    "ChainPort",
    "Web3Port",
    "EndpointPool",
    "Signer",
    "LocalSigner",
    "recover_sender",
    "ProtocolParser",
    "SelectorParser",
    "EventDispatcher",
    "decode_revert",
    "BlockRange",
    "BlockRangeSelector",
    # Configuration
    "ClientConfig",
    "RetryPolicy",
    "WriteConfig",
    # Types and enums
    "Address",
    "Wei",
    "TxType",
    "WriteStatus",
    "CallRequest",
    "UnsignedTransaction",
    "SignedTransaction",
    "Receipt",
    "WriteResult",
    "BlockHeaderView",
    "BlockView",
    "TransactionView",
    # Exceptions
    "EthGuardError",
    "ValidationError",
    "NetworkError",
    "EncodingError",
    "DecodingError",
    "UnsupportedTransactionType",
    "CallError",
    "SigningError",
    "BroadcastError",
    "ConfirmationTimeout",
    "TransactionReverted",
    "OperationCancelled",
    "NoRevertReason",
    "BlockInconsistency",
    "ParseError",
    "NoEventSignature",
    "EventSignatureMismatch",
    "InvalidStartBlock",
    "OverlappingRanges",
    # Utility functions
    "tx_id_to_hash",
    "tx_hash_to_id",
    "hex_to_str",
    "str_to_hex",
    "scale_units",
    "serialise_receipt",
]
