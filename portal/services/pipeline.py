# portal/services/pipeline.py
"""
Permission-gated mutation pipeline.

    gate -> Mutation Service -> replace canonical collection -> sync live sessions -> audit -> notify

Every create/update/delete of every feature module goes through
`MutationPipeline.execute`. Nothing else writes to a console session's
collections.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from portal.core.errors import PermissionDenied, SessionExpired, is_session_failure
from portal.core.identity import UserIdentity
from portal.core.permissions import PermissionAction, has_permission
from portal.models.audit import AuditLog
from portal.models.notification import Notification
from portal.schemas.notification import NotificationCreate
from portal.services import audit_service, notification_service
from portal.services.collections import get_collection_spec
from portal.services.mutation_service import EntityId, MutationService
from portal.services.sessions import ConsoleSession, SessionRegistry, session_registry


# (command, fresh collection) -> audit action text, or None to skip
AuditRule = Callable[["MutationCommand", List[Any]], Optional[str]]
# (command, fresh collection, acting user) -> notification, or None to skip
NotifyRule = Callable[["MutationCommand", List[Any], UserIdentity], Optional[NotificationCreate]]
# (command, fresh collection, open consoles) -> None; keeps live sessions in step with the write
SyncRule = Callable[["MutationCommand", List[Any], SessionRegistry], None]


@dataclass
class MutationCommand:
    collection: str
    action: PermissionAction
    payload: Dict[str, Any] = field(default_factory=dict)
    entity_id: Optional[EntityId] = None
    audit: Optional[AuditRule] = None
    notify: Optional[NotifyRule] = None
    sync: Optional[SyncRule] = None
    # False: a denial is a silent no-op result. True: PermissionDenied is raised.
    raise_on_denied: bool = False
    # Collection as the console held it just before dispatch; set by the pipeline
    previous: List[Any] = field(default_factory=list, init=False)

    def __post_init__(self):
        self.action = PermissionAction(self.action)
        if self.action in (PermissionAction.update, PermissionAction.delete) and self.entity_id is None:
            raise ValueError(f"{self.action.value} on '{self.collection}' needs an entity id")


class MutationStatus(str, Enum):
    applied = "applied"
    denied = "denied"
    stale = "stale"     # succeeded remotely, but a newer response was already applied


@dataclass
class MutationResult:
    status: MutationStatus
    collection: str
    items: List[Any] = field(default_factory=list)
    audit_entry: Optional[AuditLog] = None
    notification: Optional[Notification] = None

    @property
    def applied(self) -> bool:
        return self.status == MutationStatus.applied

    @property
    def denied(self) -> bool:
        return self.status == MutationStatus.denied


class MutationPipeline:
    def __init__(
        self,
        service: MutationService,
        session_factory: Optional[async_sessionmaker] = None,
        registry: Optional[SessionRegistry] = None,
    ):
        self.service = service
        self.session_factory = session_factory
        self.registry = registry if registry is not None else session_registry

    async def _dispatch(self, command: MutationCommand) -> List[Any]:
        if command.action == PermissionAction.read:
            return await self.service.list(command.collection)
        if command.action == PermissionAction.create:
            return await self.service.create(command.collection, command.payload)
        if command.action == PermissionAction.update:
            return await self.service.update(command.collection, command.entity_id, command.payload)
        return await self.service.delete(command.collection, command.entity_id)

    async def load(self, console: ConsoleSession, collection: str, raise_on_denied: bool = False) -> MutationResult:
        """Initial load of one collection, gated on read."""
        return await self.execute(
            console,
            MutationCommand(collection, PermissionAction.read, raise_on_denied=raise_on_denied),
        )

    async def execute(self, console: ConsoleSession, command: MutationCommand) -> MutationResult:
        spec = get_collection_spec(command.collection)
        acting = console.identity.effective_identity()
        store = console.collections

        # 1. Gate
        if not has_permission(acting, spec.resource, command.action):
            logger.warning(
                "Denied {} on {} ({}) for {}",
                command.action.value, command.collection, spec.resource.value,
                acting.email if acting else "signed-out session",
            )
            if command.raise_on_denied:
                raise PermissionDenied(spec.resource.value, command.action.value)
            return MutationResult(MutationStatus.denied, command.collection, store.get(command.collection))

        # Real identity is captured at dispatch; the session may change before the response lands
        real = console.identity.real_identity()
        sequence = store.next_sequence(command.collection)
        command.previous = store.get(command.collection)

        # 2. Execute (the only I/O)
        try:
            items = await self._dispatch(command)
        except Exception as exc:
            if is_session_failure(exc):
                console.force_logout()
                raise SessionExpired(401, str(exc)) from exc
            logger.error("{} on {} failed: {}", command.action.value, command.collection, exc)
            raise

        # 3. Synchronize (full replacement)
        replaced = store.replace(command.collection, items, sequence)
        result = MutationResult(
            MutationStatus.applied if replaced else MutationStatus.stale,
            command.collection,
            store.get(command.collection),
        )

        # 3b. Open consoles follow the write, stale or not
        if command.sync:
            command.sync(command, items, self.registry)

        # 4. Audit, attributed to the real identity
        if command.audit and real is not None:
            action_text = command.audit(command, items)
            if action_text:
                result.audit_entry = await audit_service.record_activity(
                    real.name, action_text, session_factory=self.session_factory
                )

        # 5. Notify
        if command.notify and acting is not None:
            spec_notification = command.notify(command, items, acting)
            if spec_notification:
                try:
                    result.notification = await notification_service.create_notification(
                        spec_notification, session_factory=self.session_factory
                    )
                except Exception:
                    # Collection is already replaced at this point
                    logger.exception("Notification for {} on {} failed", command.action.value, command.collection)

        return result
