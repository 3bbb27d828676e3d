__all__ = [
    # Sequencer
    "ActionSequencer",
    "ExistingAccountKey",
    "ResourceKey",
    "ResourceReference",
    "RunReport",
    "Step",
    "StepKind",
    "StepState",
    "TransactionResult",
    "prepare",
    "resolve",
    "submit",
    "upload",
    # Errors
    "SequencerError",
    "MissingSecret",
    "ResourceNotFound",
    "UnresolvedDependency",
    "TransactionRejected",
    "ConfirmationTimeout",
    "UpstreamUnavailable",
    "InvalidPlan",
    # Identity
    "ensure_keypair",
    "load_keypair",
    "save_keypair",
    # Ledger
    "Commitment",
    "LedgerClient",
    "TransactionSpec",
    "report_link",
    # Flows
    "create_mint_steps",
    "create_nft_steps",
    "create_token_account_steps",
    "create_token_metadata_steps",
    "mint_tokens_steps",
    "nft_launch_steps",
    "transfer_token_steps",
    "update_nft_steps",
    # Storage
    "LocalDirBackend",
    "PinataBackend",
    "StorageBackend",
    # Models
    "NftData",
    "NftPlan",
    "TokenMetadata",
    "SchemaRegistry",
]

from .errors import (
    ConfirmationTimeout,
    InvalidPlan,
    MissingSecret,
    ResourceNotFound,
    SequencerError,
    TransactionRejected,
    UnresolvedDependency,
    UpstreamUnavailable,
)
from .sequencer import (
    ActionSequencer,
    ExistingAccountKey,
    ResourceKey,
    ResourceReference,
    RunReport,
    Step,
    StepKind,
    StepState,
    TransactionResult,
    prepare,
    resolve,
    submit,
    upload,
)
from .sigil.keypair import ensure_keypair, load_keypair, save_keypair
from .pneuma.cluster import Commitment, report_link
from .pneuma.rpc import LedgerClient
from .pneuma.tx import TransactionSpec
from .flows import (
    create_mint_steps,
    create_nft_steps,
    create_token_account_steps,
    create_token_metadata_steps,
    mint_tokens_steps,
    nft_launch_steps,
    transfer_token_steps,
    update_nft_steps,
)
from .anamnesis.storage import LocalDirBackend, PinataBackend, StorageBackend
from .spec.models import NftData, NftPlan, TokenMetadata
from .spec.schemas import SchemaRegistry
