"""Process-wide capability registry mapping agent names to contracts."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from swarmflow.errors import (
    CapabilityNotFoundError,
    DuplicateVersionError,
    RegistryFrozenError,
)
from swarmflow.utilities.logger_manager import LoggerManager, default_logger_manager

from .contract import AgentContract, AgentRef


class CapabilityRegistry:
    """Holds every registered ``(name, version)`` contract.

    Registration happens at startup. The engine freezes the registry when
    the first workflow runs, after which it is read without locking.
    """

    def __init__(
        self,
        contracts: Iterable[AgentContract] = (),
        logger_manager: LoggerManager | None = None,
    ) -> None:
        self._contracts: dict[str, dict[int, AgentContract]] = {}
        self._frozen = False
        self.logger_manager = logger_manager or default_logger_manager()
        self.logger = self.logger_manager.get_logger()
        for contract in contracts:
            self.register(contract)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def register(self, contract: AgentContract) -> AgentContract:
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register {contract.ref}: registry is frozen"
            )
        versions = self._contracts.setdefault(contract.name, {})
        if contract.version in versions:
            raise DuplicateVersionError(f"{contract.ref} is already registered")
        versions[contract.version] = contract
        self.logger.debug(
            "Capability registered",
            extra={"context": {"agent": str(contract.ref)}},
        )
        return contract

    def resolve(self, name: str, version: int | None = None) -> AgentContract:
        """Return the requested version, or the highest one when omitted."""
        versions = self._contracts.get(name)
        if not versions:
            raise CapabilityNotFoundError(f"No capability registered as {name!r}")
        if version is None:
            return versions[max(versions)]
        contract = versions.get(version)
        if contract is None:
            raise CapabilityNotFoundError(
                f"No capability registered as {name}@{version}",
                details=f"known versions: {sorted(versions)}",
            )
        return contract

    def resolve_ref(self, ref: AgentRef | str) -> AgentContract:
        parsed = AgentRef.parse(ref)
        return self.resolve(parsed.name, parsed.version)

    def versions(self, name: str) -> tuple[int, ...]:
        return tuple(sorted(self._contracts.get(name, {})))

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._contracts))

    def __contains__(self, ref: object) -> bool:
        if not isinstance(ref, (str, AgentRef)):
            return False
        try:
            self.resolve_ref(ref)
        except CapabilityNotFoundError:
            return False
        return True

    def __iter__(self) -> Iterator[AgentContract]:
        for name in sorted(self._contracts):
            versions = self._contracts[name]
            for version in sorted(versions):
                yield versions[version]

    def __len__(self) -> int:
        return sum(len(versions) for versions in self._contracts.values())
