from .client import ChainClient
from .constants import ToolkitConfig, load_config, amount_to_value, value_to_amount
from .schemas import (
    EVMECDSASignature,
    EVMTokenPermit,
    EVMTransactionConfirmation,
    GasOverrides,
)
from .signatures import (
    build_permit_typed_data,
    sign_permit,
    split_signature,
)
from .verifies import (
    recover_permit_signer,
    verify_permit_signer,
    query_erc20_allowance,
)

__all__ = [
    "ChainClient",
    "ToolkitConfig",
    "load_config",
    "amount_to_value",
    "value_to_amount",
    "EVMECDSASignature",
    "EVMTokenPermit",
    "EVMTransactionConfirmation",
    "GasOverrides",
    "build_permit_typed_data",
    "sign_permit",
    "split_signature",
    "recover_permit_signer",
    "verify_permit_signer",
    "query_erc20_allowance",
]
