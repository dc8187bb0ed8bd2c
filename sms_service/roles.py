from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_ROLES = (
    "api",
    "worker-deliver",
    "all",
)

# Roles that run the delivery consumer inside the process.
WORKER_ROLES = frozenset({"worker-deliver", "all"})

# Roles that serve the message API.
API_ROLES = frozenset({"api", "all"})


@dataclass(frozen=True)
class RuntimeRole:
    name: str

    @property
    def runs_worker(self) -> bool:
        return self.name in WORKER_ROLES

    @property
    def serves_api(self) -> bool:
        return self.name in API_ROLES


def validate_role(role: str) -> RuntimeRole:
    if role in SUPPORTED_ROLES:
        return RuntimeRole(name=role)

    supported = ", ".join(SUPPORTED_ROLES)
    raise ValueError(
        f"Unsupported role '{role}'. Supported roles: {supported}. "
        "Note: the in-memory queue needs role 'all'; split roles require DATABASE_URL."
    )
