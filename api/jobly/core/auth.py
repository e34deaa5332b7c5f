from dataclasses import dataclass, field

JOBS_READ = "jobs:read"
JOBS_WRITE = "jobs:write"


@dataclass(slots=True, frozen=True)
class Principal:
    """Caller resolved from a verified bearer token."""

    subject: str
    role: str
    scopes: frozenset[str] = field(default_factory=frozenset)
    email: str | None = None

    def describe(self) -> str:
        """Audit label: subject, plus email when the identity provider sent one."""
        return f"{self.subject} <{self.email}>" if self.email else self.subject

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")
