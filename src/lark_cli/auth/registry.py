"""Static service registry mapping CLI commands to OAuth requirements.

Services are capabilities (drive, docs, mail, ...) rather than concrete
commands. Commands map to one or more services; each service declares which
token types it accepts and which user OAuth scopes it needs.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from lark_cli.auth.scopes import normalize_scopes, normalize_services
from lark_cli.exceptions import ScopeError, UnknownServiceError


class TokenType(StrEnum):
    """Kinds of access token a service may require."""

    TENANT = "tenant"
    USER = "user"


@dataclass(frozen=True)
class ScopeVariants:
    """Full and read-only user OAuth scope variants of a service."""

    full: tuple[str, ...] = ()
    readonly: tuple[str, ...] = ()


@dataclass(frozen=True)
class ServiceDef:
    """Registry entry for a single service.

    ``required_user_scopes`` is ``None`` when the correct scope strings are
    not known yet; such services are reported as undeclared instead of
    guessing.
    """

    name: str
    token_types: tuple[TokenType, ...]
    required_user_scopes: tuple[str, ...] | None = None
    user_scopes: ScopeVariants = field(default_factory=ScopeVariants)
    requires_offline: bool = False

    @property
    def requires_user_token(self) -> bool:
        return TokenType.USER in self.token_types

    @property
    def declares_user_scopes(self) -> bool:
        return bool(
            self.user_scopes.full
            or self.user_scopes.readonly
            or self.required_user_scopes
        )


@dataclass(frozen=True)
class CommandRequirements:
    """Auth requirements of a command derived from its services."""

    command: str
    services: list[str]
    token_types: list[TokenType]
    requires_offline: bool
    required_user_scopes: list[str]
    undeclared_services: list[str]

    @property
    def requires_user_token(self) -> bool:
        return TokenType.USER in self.token_types


_BOTH = (TokenType.TENANT, TokenType.USER)
_USER = (TokenType.USER,)
_TENANT = (TokenType.TENANT,)

_DOCX_FULL = (
    "docx:document.block:convert",
    "docx:document:create",
    "docx:document:readonly",
    "docx:document:write_only",
)
_MAIL_READ = (
    "mail:user_mailbox.message:readonly",
    "mail:user_mailbox.message.subject:read",
    "mail:user_mailbox.message.address:read",
    "mail:user_mailbox.message.body:read",
)
_DRIVE_PERMISSIONS = (
    "docs:permission.member:create",
    "docs:permission.member:delete",
    "docs:permission.member:retrieve",
    "docs:permission.member:update",
    "docs:permission.setting:write_only",
)

DEFAULT_SERVICES: dict[str, ServiceDef] = {
    "im": ServiceDef(
        name="im",
        token_types=_BOTH,
        required_user_scopes=("im:chat:read",),
        user_scopes=ScopeVariants(
            full=("im:chat:read", "im:chat.members:read"),
            readonly=("im:chat:read",),
        ),
    ),
    "search-message": ServiceDef(
        name="search-message",
        token_types=_USER,
        required_user_scopes=("im:message:readonly", "search:message"),
        requires_offline=True,
    ),
    "search-user": ServiceDef(
        name="search-user",
        token_types=_USER,
        required_user_scopes=(
            "contact:contact.base:readonly",
            "contact:user.employee_id:readonly",
            "contact:user:search",
        ),
        requires_offline=True,
    ),
    "search-docs": ServiceDef(
        name="search-docs",
        token_types=_USER,
        required_user_scopes=("search:docs:read",),
        requires_offline=True,
    ),
    # Drive uses dedicated scopes per operation rather than the broad
    # drive:drive / drive:drive:readonly pair.
    "drive-search": ServiceDef(
        name="drive search",
        token_types=_USER,
        required_user_scopes=("drive:drive.search:readonly",),
        user_scopes=ScopeVariants(
            full=("drive:drive.search:readonly",),
            readonly=("drive:drive.search:readonly",),
        ),
        requires_offline=True,
    ),
    "drive-metadata": ServiceDef(
        name="drive metadata",
        token_types=_BOTH,
        required_user_scopes=(
            "drive:drive.metadata:readonly",
            "space:document:retrieve",
        ),
        user_scopes=ScopeVariants(
            full=("drive:drive.metadata:readonly", "space:document:retrieve"),
            readonly=("drive:drive.metadata:readonly", "space:document:retrieve"),
        ),
        requires_offline=True,
    ),
    "drive-download": ServiceDef(
        name="drive download",
        token_types=_BOTH,
        required_user_scopes=("drive:file:download",),
        user_scopes=ScopeVariants(
            full=("drive:file:download",), readonly=("drive:file:download",)
        ),
        requires_offline=True,
    ),
    "drive-upload": ServiceDef(
        name="drive upload",
        token_types=_BOTH,
        required_user_scopes=("drive:file:upload",),
        user_scopes=ScopeVariants(full=("drive:file:upload",)),
        requires_offline=True,
    ),
    "drive-permissions": ServiceDef(
        name="drive permissions",
        token_types=_BOTH,
        required_user_scopes=_DRIVE_PERMISSIONS,
        user_scopes=ScopeVariants(
            full=_DRIVE_PERMISSIONS,
            readonly=("docs:permission.member:retrieve",),
        ),
        requires_offline=True,
    ),
    "drive-comment-read": ServiceDef(
        name="drive comment read",
        token_types=_BOTH,
        required_user_scopes=("docs:document.comment:read",),
        user_scopes=ScopeVariants(
            full=("docs:document.comment:read",),
            readonly=("docs:document.comment:read",),
        ),
        requires_offline=True,
    ),
    "drive-comment-write": ServiceDef(
        name="drive comment write",
        token_types=_BOTH,
        required_user_scopes=(
            "docs:document.comment:create",
            "docs:document.comment:update",
        ),
        user_scopes=ScopeVariants(
            full=("docs:document.comment:create", "docs:document.comment:update"),
        ),
        requires_offline=True,
    ),
    "drive-export": ServiceDef(
        name="drive export",
        token_types=_BOTH,
        required_user_scopes=("drive:export:readonly",),
        requires_offline=True,
    ),
    # "docs" is the legacy command name; "docx" is the API surface name.
    "docs": ServiceDef(
        name="docs",
        token_types=_BOTH,
        required_user_scopes=("docx:document:readonly",),
        user_scopes=ScopeVariants(
            full=_DOCX_FULL, readonly=("docx:document:readonly",)
        ),
        requires_offline=True,
    ),
    "docx": ServiceDef(
        name="docx",
        token_types=_BOTH,
        required_user_scopes=("docx:document:readonly",),
        user_scopes=ScopeVariants(
            full=_DOCX_FULL, readonly=("docx:document:readonly",)
        ),
        requires_offline=True,
    ),
    "sheets": ServiceDef(
        name="sheets",
        token_types=_BOTH,
        required_user_scopes=("sheets:spreadsheet:read",),
        user_scopes=ScopeVariants(
            full=(
                "sheets:spreadsheet:create",
                "sheets:spreadsheet:read",
                "sheets:spreadsheet:write_only",
                "sheets:spreadsheet.meta:read",
            ),
            readonly=("sheets:spreadsheet:readonly",),
        ),
        requires_offline=True,
    ),
    "calendar": ServiceDef(
        name="calendar",
        token_types=_BOTH,
        required_user_scopes=("calendar:calendar",),
        user_scopes=ScopeVariants(
            full=("calendar:calendar",), readonly=("calendar:calendar:readonly",)
        ),
    ),
    "task": ServiceDef(
        name="task",
        token_types=_BOTH,
        required_user_scopes=("task:task:read",),
        user_scopes=ScopeVariants(
            full=("task:task:write",), readonly=("task:task:read",)
        ),
        requires_offline=True,
    ),
    "task-write": ServiceDef(
        name="task write",
        token_types=_BOTH,
        required_user_scopes=("task:task:write",),
        user_scopes=ScopeVariants(full=("task:task:write",)),
        requires_offline=True,
    ),
    # Tasklist endpoints need the read scope even when write is granted.
    "tasklist": ServiceDef(
        name="tasklist",
        token_types=_BOTH,
        required_user_scopes=("task:tasklist:read",),
        user_scopes=ScopeVariants(
            full=("task:tasklist:read", "task:tasklist:write"),
            readonly=("task:tasklist:read",),
        ),
        requires_offline=True,
    ),
    "tasklist-write": ServiceDef(
        name="tasklist write",
        token_types=_BOTH,
        required_user_scopes=("task:tasklist:write",),
        user_scopes=ScopeVariants(full=("task:tasklist:read", "task:tasklist:write")),
        requires_offline=True,
    ),
    "mail": ServiceDef(
        name="mail",
        token_types=_BOTH,
        required_user_scopes=_MAIL_READ,
        user_scopes=ScopeVariants(
            full=(*_MAIL_READ, "mail:user_mailbox.message:send"),
            readonly=_MAIL_READ,
        ),
        requires_offline=True,
    ),
    "mail-send": ServiceDef(
        name="mail send",
        token_types=_USER,
        required_user_scopes=("mail:user_mailbox.message:send",),
        requires_offline=True,
    ),
    "mail-public": ServiceDef(name="mail public", token_types=_TENANT),
    "wiki": ServiceDef(
        name="wiki",
        token_types=_BOTH,
        required_user_scopes=("wiki:wiki",),
        user_scopes=ScopeVariants(
            full=("wiki:wiki",), readonly=("wiki:wiki:readonly",)
        ),
        requires_offline=True,
    ),
    # Some VC privilege strings show up in errors but are not selectable
    # OAuth scopes; only confirmed scopes are listed.
    "vc-meeting": ServiceDef(
        name="vc meeting",
        token_types=_USER,
        required_user_scopes=("vc:meeting:readonly",),
        user_scopes=ScopeVariants(readonly=("vc:meeting:readonly",)),
        requires_offline=True,
    ),
    "base": ServiceDef(name="base", token_types=_TENANT),
}

# Keys are space-separated canonical command paths, excluding the binary name.
DEFAULT_COMMAND_MAP: dict[str, list[str]] = {
    "drive": ["drive-metadata"],
    "drive search": ["drive-search"],
    "drive download": ["drive-download"],
    "drive upload": ["drive-upload"],
    "drive export": ["drive-export"],
    "drive permissions": ["drive-permissions"],
    "drive comments": ["drive-comment-read"],
    "drive comments add": ["drive-comment-write"],
    "drive comments update": ["drive-comment-write"],
    "docs": ["docs"],
    "docs export": ["drive-export"],
    "docs search": ["search-docs"],
    "sheets": ["sheets"],
    "mail": ["mail"],
    "mail send": ["mail-send"],
    "mail public-mailboxes": ["mail-public"],
    "mail mailboxes": ["mail-public"],
    "wiki": ["wiki"],
    "base": ["base"],
    "bases": ["base"],
    "calendar": ["calendar"],
    "calendars": ["calendar"],
    "meetings": ["vc-meeting"],
    "tasks": ["task"],
    "tasks create": ["task-write"],
    "tasks update": ["task-write"],
    "tasks delete": ["task-write"],
    "tasklists": ["tasklist"],
    "tasklists create": ["tasklist-write"],
    "tasklists update": ["tasklist-write"],
    "tasklists delete": ["tasklist-write"],
    "chats": ["im"],
    "messages": ["im"],
    "msg": ["im"],
    "msg search": ["search-message"],
    "messages search": ["search-message"],
    "users search": ["search-user"],
    "im": ["im"],
}

DEFAULT_ALIASES: dict[str, list[str]] = {
    "drive": ["drive-download", "drive-metadata", "drive-search", "drive-upload"],
    "all": ["drive", "docx", "sheets"],
    "user": ["drive", "docx", "sheets"],
}

DEFAULT_USER_OAUTH_SERVICES = ["drive"]

DRIVE_SCOPE_VALUES = ("full", "readonly")


def _split_command(command: str | Sequence[str]) -> list[str]:
    parts = command.split() if isinstance(command, str) else list(command)
    normalized = []
    for part in parts:
        part = part.strip().lower()
        if not part:
            return []
        normalized.append(part)
    return normalized


class ScopeRegistry:
    """Lookup functions over a service table and a command map.

    Args:
        services: Service name to definition
        command_map: Command path to service names
        aliases: User-facing service aliases for login
        default_services: Services used when login asks for services
            without naming any

    """

    def __init__(
        self,
        services: Mapping[str, ServiceDef],
        command_map: Mapping[str, Sequence[str]],
        aliases: Mapping[str, Sequence[str]] | None = None,
        default_services: Sequence[str] | None = None,
    ) -> None:
        self.services = dict(services)
        self.command_map = {key: list(value) for key, value in command_map.items()}
        self.aliases = {key: list(value) for key, value in (aliases or {}).items()}
        self.default_services = list(default_services or [])

    def with_command_overrides(
        self, overrides: Mapping[str, Sequence[str]]
    ) -> "ScopeRegistry":
        """Return a registry whose command map merges ``overrides`` in."""
        merged = dict(self.command_map)
        for key, services in overrides.items():
            merged[" ".join(_split_command(key))] = list(services)
        return ScopeRegistry(self.services, merged, self.aliases, self.default_services)

    def all_service_names(self) -> list[str]:
        return sorted(self.services)

    def service(self, name: str) -> ServiceDef:
        try:
            return self.services[name]
        except KeyError:
            raise UnknownServiceError(f'unknown service "{name}"') from None

    def services_for_command(self, command: str | Sequence[str]) -> list[str] | None:
        """Services for a command path using longest-prefix matching.

        ``["drive", "list"]`` falls back to the ``drive`` entry unless a
        more specific mapping exists.

        Returns:
            Sorted, de-duplicated service names, or None if nothing matched

        """
        parts = _split_command(command)
        for end in range(len(parts), 0, -1):
            services = self.command_map.get(" ".join(parts[:end]))
            if services is not None:
                return sorted(normalize_services(services))
        return None

    def token_types_from_services(self, services: Iterable[str]) -> list[TokenType]:
        types: set[TokenType] = set()
        for name in normalize_services(services):
            types.update(self.service(name).token_types)
        return sorted(types)

    def required_user_scopes_report(
        self, services: Iterable[str]
    ) -> tuple[list[str], list[str]]:
        """Union of required scopes, plus user services with none declared.

        Returns:
            Tuple of (sorted required scopes, sorted undeclared services)

        """
        scopes: list[str] = []
        undeclared: list[str] = []
        for name in normalize_services(services):
            definition = self.service(name)
            if definition.required_user_scopes is None:
                if definition.requires_user_token:
                    undeclared.append(name)
                continue
            scopes.extend(definition.required_user_scopes)
        return sorted(normalize_scopes(scopes)), sorted(set(undeclared))

    def required_user_scopes_from_services(self, services: Iterable[str]) -> list[str]:
        scopes, _ = self.required_user_scopes_report(services)
        return scopes

    def requires_offline_from_services(self, services: Iterable[str]) -> bool:
        return any(
            self.service(name).requires_offline for name in normalize_services(services)
        )

    def services_missing_required_user_scopes(
        self, services: Iterable[str]
    ) -> list[str]:
        _, undeclared = self.required_user_scopes_report(services)
        return undeclared

    def suggested_user_oauth_scopes_from_services(
        self, services: Iterable[str], readonly: bool = False
    ) -> list[str]:
        """Preferred scope variant per service, falling back to required scopes."""
        scopes: list[str] = []
        for name in normalize_services(services):
            definition = self.service(name)
            variants = definition.user_scopes
            ordered = (
                (variants.readonly, variants.full)
                if readonly
                else (variants.full, variants.readonly)
            )
            chosen = next((v for v in ordered if v), None)
            if chosen is None:
                chosen = definition.required_user_scopes or ()
            scopes.extend(chosen)
        return sorted(normalize_scopes(scopes))

    def expand_aliases(self, services: Iterable[str]) -> list[str]:
        """Expand aliases such as ``all`` into concrete service names."""
        pending = normalize_services(services)
        expanded: list[str] = []
        seen_aliases: set[str] = set()
        while pending:
            name = pending.pop(0)
            alias = self.aliases.get(name)
            if alias is not None and name not in seen_aliases:
                seen_aliases.add(name)
                pending = normalize_services(alias) + pending
                continue
            expanded.append(name)
        return normalize_services(expanded)

    def user_oauth_scopes_from_services(
        self,
        services: Iterable[str],
        readonly: bool = False,
        drive_scope: str = "",
    ) -> list[str]:
        """Scopes to request at login for a set of services.

        Args:
            services: Service names or aliases; defaults apply when empty
            readonly: Prefer read-only variants
            drive_scope: ``full`` or ``readonly`` variant selector

        Returns:
            Sorted, de-duplicated scopes

        Raises:
            ScopeError: On invalid variant selection or services that cannot
                be used with user OAuth

        """
        drive_scope = drive_scope.strip().lower()
        if drive_scope:
            if drive_scope == "file":
                raise ScopeError(
                    "drive-scope file is not supported; use full or readonly"
                )
            if drive_scope not in DRIVE_SCOPE_VALUES:
                raise ScopeError(
                    f'invalid drive-scope "{drive_scope}" (use full or readonly)'
                )
        if readonly:
            if drive_scope:
                raise ScopeError("drive-scope cannot be combined with --readonly")
            drive_scope = "readonly"
        variant = drive_scope or "full"

        names = self.expand_aliases(services)
        if not names:
            names = self.expand_aliases(self.default_services)

        scopes: list[str] = []
        for name in names:
            if name not in self.services:
                raise UnknownServiceError(
                    f'unknown service "{name}" '
                    "(use `lark auth user services` to list supported services)"
                )
            definition = self.services[name]
            if not definition.requires_user_token:
                raise ScopeError(f'service "{name}" does not require user OAuth')
            variants = definition.user_scopes
            if variant == "readonly":
                candidates = (variants.readonly, variants.full)
            else:
                candidates = (variants.full, variants.readonly)
            chosen = next((c for c in candidates if c), None)
            chosen = chosen or definition.required_user_scopes
            if not chosen:
                raise ScopeError(
                    f'service "{name}" does not declare user OAuth scopes yet'
                )
            scopes.extend(chosen)
        return sorted(normalize_scopes(scopes))

    def list_user_oauth_services(self) -> list[str]:
        """Services usable in services-based login, i.e. with known scopes."""
        return sorted(
            name
            for name, definition in self.services.items()
            if definition.requires_user_token and definition.declares_user_scopes
        )

    def requirements_for_command(self, command: str) -> CommandRequirements | None:
        """Full auth requirements of a command, or None if it is unmapped."""
        services = self.services_for_command(command)
        if services is None:
            return None
        required, undeclared = self.required_user_scopes_report(services)
        return CommandRequirements(
            command=" ".join(command.split()),
            services=services,
            token_types=self.token_types_from_services(services),
            requires_offline=self.requires_offline_from_services(services),
            required_user_scopes=required,
            undeclared_services=undeclared,
        )


DEFAULT_REGISTRY = ScopeRegistry(
    DEFAULT_SERVICES,
    DEFAULT_COMMAND_MAP,
    aliases=DEFAULT_ALIASES,
    default_services=DEFAULT_USER_OAUTH_SERVICES,
)


def get_registry(registry: ScopeRegistry | None = None) -> ScopeRegistry:
    """Return ``registry`` or the built-in default registry."""
    return registry if registry is not None else DEFAULT_REGISTRY
