"""
Action Sequencer - run a declarative pipeline of dependent on-chain steps.

A pipeline is a list of named steps.  Each step declares the names of the
steps whose outputs it consumes and only ever sees those outputs.  The
order is checked before anything touches the network: a step may only
require steps listed before it.

Step kinds:
- resolve:  look up an account by its derived address, create it if absent
- submit:   sign, send and confirm a transaction built from earlier outputs
- upload:   push an off-chain document and return its URI
- prepare:  compute a value locally, such as checked on-chain data

Every step moves pending -> submitted -> confirmed, or pending -> submitted
-> failed.  The first failure aborts the run; nothing is retried and no
earlier on-chain effect is undone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Optional, Protocol, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .errors import ResourceNotFound, UnresolvedDependency
from .pneuma.cluster import DEFAULT_CLUSTER, DEFAULT_COMMITMENT, Commitment, report_link
from .pneuma.rpc import AccountInfo, Ledger
from .pneuma.tx import TransactionSpec, sign_and_send


class StepKind(str, Enum):
    RESOLVE = "resolve-or-create"
    SUBMIT = "submit-transaction"
    UPLOAD = "upload"
    PREPARE = "prepare"


class StepState(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ResourceKey(Protocol):
    """Identifies an on-chain resource and knows how to create it."""

    @property
    def label(self) -> str:
        ...

    def address(self) -> Pubkey:
        ...

    def creation(self, ledger: Ledger, payer: Pubkey) -> Optional[TransactionSpec]:
        """Transaction creating the resource, or None if it must already exist."""
        ...


@dataclass(frozen=True)
class ResourceReference:
    address: Pubkey
    created: bool
    signature: Optional[str] = None
    link: str = ""
    account: Optional[AccountInfo] = None

    def __str__(self) -> str:
        return str(self.address)


@dataclass(frozen=True)
class TransactionResult:
    signature: str
    link: str

    def __str__(self) -> str:
        return self.signature


@dataclass(frozen=True)
class ExistingAccountKey:
    """An account that must already exist; never created."""

    account: Pubkey
    label: str = "account"

    def address(self) -> Pubkey:
        return self.account

    def creation(self, ledger: Ledger, payer: Pubkey) -> None:
        return None


class StepInputs(Mapping[str, Any]):
    """Outputs of the steps a step declared it requires, and nothing else."""

    def __init__(self, step: str, outputs: Mapping[str, Any]) -> None:
        self._step = step
        self._outputs = dict(outputs)

    def __getitem__(self, name: str) -> Any:
        try:
            return self._outputs[name]
        except KeyError:
            raise UnresolvedDependency(
                f"Step '{self._step}' used output of '{name}' without requiring it"
            ) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._outputs)

    def __len__(self) -> int:
        return len(self._outputs)


@dataclass(frozen=True)
class Step:
    """
    One pipeline step.

    Attributes:
        name: Unique name; later steps refer to the output by it
        kind: What the step does with the value ``build`` returns
        build: Called with the required outputs; returns a ResourceKey
               (resolve), a TransactionSpec (submit), a URI (upload)
               or a value computed locally (prepare)
        requires: Names of earlier steps whose outputs ``build`` reads
        description: Human-readable status line
    """

    name: str
    kind: StepKind
    build: Callable[[StepInputs], Any]
    requires: tuple[str, ...] = ()
    description: str = ""


def resolve(
    name: str,
    build: Callable[[StepInputs], ResourceKey],
    requires: Sequence[str] = (),
    description: str = "",
) -> Step:
    return Step(name, StepKind.RESOLVE, build, tuple(requires), description)


def submit(
    name: str,
    build: Callable[[StepInputs], TransactionSpec],
    requires: Sequence[str] = (),
    description: str = "",
) -> Step:
    return Step(name, StepKind.SUBMIT, build, tuple(requires), description)


def upload(
    name: str,
    build: Callable[[StepInputs], str],
    requires: Sequence[str] = (),
    description: str = "",
) -> Step:
    return Step(name, StepKind.UPLOAD, build, tuple(requires), description)


def prepare(
    name: str,
    build: Callable[[StepInputs], Any],
    requires: Sequence[str] = (),
    description: str = "",
) -> Step:
    return Step(name, StepKind.PREPARE, build, tuple(requires), description)


@dataclass
class StepRecord:
    step: Step
    state: StepState = StepState.PENDING
    output: Any = None
    error: Optional[BaseException] = None

    @property
    def name(self) -> str:
        return self.step.name


@dataclass
class RunReport:
    records: list[StepRecord] = field(default_factory=list)

    @property
    def outputs(self) -> dict[str, Any]:
        return {
            r.name: r.output for r in self.records if r.state is StepState.CONFIRMED
        }

    @property
    def succeeded(self) -> bool:
        return bool(self.records) and all(
            r.state is StepState.CONFIRMED for r in self.records
        )

    def __getitem__(self, name: str) -> Any:
        return self.outputs[name]


def validate_order(steps: Sequence[Step]) -> None:
    """
    Check that names are unique and every requirement names an earlier step.

    Raises:
        UnresolvedDependency: On a forward or dangling reference
        ValueError: On a duplicate step name
    """
    seen: set[str] = set()
    for step in steps:
        if step.name in seen:
            raise ValueError(f"Duplicate step name: {step.name}")
        for required in step.requires:
            if required not in seen:
                raise UnresolvedDependency(
                    f"Step '{step.name}' requires '{required}', "
                    "which is not produced by an earlier step"
                )
        seen.add(step.name)


@dataclass
class ActionSequencer:
    """
    Executes steps against a ledger on behalf of one identity.

    Attributes:
        ledger: Remote ledger (LedgerClient or a test double)
        payer: Actor identity; pays fees and signs every transaction
        cluster: Cluster name used for explorer links
        commitment: Commitment every transaction waits for
        on_event: Called with the StepRecord after each state change
    """

    ledger: Ledger
    payer: Keypair
    cluster: str = DEFAULT_CLUSTER
    commitment: Commitment = DEFAULT_COMMITMENT
    on_event: Optional[Callable[[StepRecord], None]] = None
    report: RunReport = field(default_factory=RunReport)

    def report_link(self, kind: str, identifier: str) -> str:
        return report_link(kind, identifier, self.cluster)

    def submit(
        self,
        spec: TransactionSpec,
        signers: Sequence[Keypair] = (),
    ) -> TransactionResult:
        """Sign with payer + signers, send, and wait for confirmation."""
        if signers:
            spec = TransactionSpec(
                spec.instructions, tuple(spec.signers) + tuple(signers), spec.memo
            )
        signature = sign_and_send(self.ledger, spec, self.payer, self.commitment)
        return TransactionResult(signature, self.report_link("transaction", signature))

    def resolve_or_create(self, key: ResourceKey) -> ResourceReference:
        """
        Return the resource at the key's address, creating it if absent.

        Raises:
            ResourceNotFound: If absent and the key cannot create it
        """
        address = key.address()
        info = self.ledger.get_account_info(address)
        if info is not None:
            return ResourceReference(
                address=address,
                created=False,
                link=self.report_link("address", str(address)),
                account=info,
            )

        spec = key.creation(self.ledger, self.payer.pubkey())
        if spec is None:
            raise ResourceNotFound(f"{key.label} does not exist ({address})")

        result = self.submit(spec)
        return ResourceReference(
            address=address,
            created=True,
            signature=result.signature,
            link=self.report_link("address", str(address)),
        )

    def run(self, steps: Sequence[Step]) -> RunReport:
        """
        Execute a pipeline.

        Returns:
            RunReport with every step confirmed

        Raises:
            UnresolvedDependency: Before any step runs, on a bad ordering
            SequencerError: The first step failure, after recording it
        """
        validate_order(steps)
        self.report = RunReport([StepRecord(step) for step in steps])
        outputs: dict[str, Any] = {}

        for record in self.report.records:
            step = record.step
            inputs = StepInputs(step.name, {n: outputs[n] for n in step.requires})

            self._transition(record, StepState.SUBMITTED)
            try:
                output = self._execute(step, inputs)
            except Exception as exc:
                record.error = exc
                self._transition(record, StepState.FAILED)
                raise

            record.output = output
            outputs[step.name] = output
            self._transition(record, StepState.CONFIRMED)

        return self.report

    def _execute(self, step: Step, inputs: StepInputs) -> Any:
        built = step.build(inputs)
        if step.kind is StepKind.RESOLVE:
            return self.resolve_or_create(built)
        if step.kind is StepKind.SUBMIT:
            return self.submit(built)
        if step.kind is StepKind.PREPARE:
            return built
        if not built:
            raise ResourceNotFound(f"Step '{step.name}' produced no URI")
        return built

    def _transition(self, record: StepRecord, state: StepState) -> None:
        record.state = state
        if self.on_event is not None:
            self.on_event(record)
