"""Model targets selected for serving and the ordered collection holding them."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from .errors import DuplicateServiceIdError

GGUF_BACKEND = "ctransformers"

_UNSAFE_UNIT_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class TargetKind(Enum):
    """How a target locates its model."""
    LOCAL_GGUF = "local_gguf"
    LOCAL_HF_DIR = "local_hfdir"
    HUB = "hub"

    @property
    def is_local(self) -> bool:
        return self is not TargetKind.HUB


@dataclass(frozen=True)
class Target:
    """A single model exposed as its own systemd service."""

    kind: TargetKind
    service_id: str
    model_ref: str
    port: int
    backend: Optional[str] = None

    @property
    def leading_arguments(self) -> Tuple[str, ...]:
        """Start arguments that precede the model reference."""
        if self.kind is TargetKind.HUB:
            return ()
        if self.backend:
            return (self.backend, "--model-id")
        return ("--model-id",)

    @property
    def start_argument(self) -> Tuple[str, ...]:
        """Arguments passed to ``openllm start`` to select the model."""
        return self.leading_arguments + (self.model_ref,)


def sanitize_service_name(service_id: str) -> str:
    """Map a service id onto characters systemd and the filesystem accept.

    Slashes become hyphens; anything outside ``[A-Za-z0-9._-]`` is dropped.
    """
    return _UNSAFE_UNIT_CHARS.sub("", service_id.replace("/", "-"))


def unit_name_for(prefix: str, service_id: str) -> str:
    """Build the unit file name for a service id, e.g. ``openllm-org-Namev1.service``."""
    return f"{prefix}-{sanitize_service_name(service_id)}.service"


def hub_service_id(model_id: str) -> str:
    """Derive the candidate service id for a hub model identifier."""
    return model_id.replace("/", "-")


class TargetCollection:
    """Ordered targets with unique service ids and sequential ports.

    Ports are assigned when a target is appended, so the n-th target always
    listens on ``base_port + n`` whatever happens to earlier services.
    """

    def __init__(self, base_port: int) -> None:
        self.base_port = base_port
        self._targets: List[Target] = []

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets)

    def __len__(self) -> int:
        return len(self._targets)

    def __bool__(self) -> bool:
        return bool(self._targets)

    def __getitem__(self, index: int) -> Target:
        return self._targets[index]

    @property
    def next_port(self) -> int:
        return self.base_port + len(self._targets)

    def has_service_id(self, service_id: str) -> bool:
        """True when the id, or an id sharing its unit name, is already collected."""
        sanitized = sanitize_service_name(service_id)
        return any(
            t.service_id == service_id or sanitize_service_name(t.service_id) == sanitized
            for t in self._targets
        )

    def unique_service_id(self, base: str) -> str:
        """Return ``base`` or the first free ``base-N`` with N counting from 1."""
        candidate = base
        counter = 1
        while self.has_service_id(candidate):
            candidate = f"{base}-{counter}"
            counter += 1
        return candidate

    def add(
        self,
        kind: TargetKind,
        service_id: str,
        model_ref: str,
        backend: Optional[str] = None,
    ) -> Target:
        """Append a new target and return it.

        Raises:
            DuplicateServiceIdError: If the service id is already collected.
        """
        if self.has_service_id(service_id):
            raise DuplicateServiceIdError(
                f"Service ID '{service_id}' is already in use."
            )
        target = Target(
            kind=kind,
            service_id=service_id,
            model_ref=model_ref,
            port=self.next_port,
            backend=backend,
        )
        self._targets.append(target)
        return target
