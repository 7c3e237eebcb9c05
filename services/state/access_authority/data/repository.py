"""Access authority repository implementations."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import and_, delete, exists, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from packages.turnstile_shared.errors import codes
from packages.turnstile_shared.ids import new_record_id
from resources.substrates.database import normalize_database_error, transactional_session
from services.state.access_authority.data.schema import (
    caller_roles,
    callers,
    credentials,
    endpoint_policies,
    permissions,
    role_permissions,
    roles,
)
from services.state.access_authority.domain import (
    CallerIdentity,
    EndpointPolicy,
    Permission,
    Role,
    RotatingCredential,
    utc_now,
)
from services.state.access_authority.errors import ConflictError, StoreError
from services.state.access_authority.interfaces import AccessRepository


class InMemoryAccessRepository(AccessRepository):
    """Dictionary-backed repository used by tests and local wiring."""

    def __init__(self) -> None:
        self._roles: dict[str, Role] = {}
        self._permissions: dict[str, Permission] = {}
        self._callers: dict[str, CallerIdentity] = {}
        self._caller_roles: set[tuple[str, str]] = set()
        self._role_permissions: set[tuple[str, str]] = set()
        self._endpoint_policies: dict[tuple[str, str], tuple[str, str]] = {}
        self._credentials: dict[str, RotatingCredential] = {}

    def create_role(self, *, name: str) -> Role:
        if self.get_role_by_name(name=name) is not None:
            raise ConflictError(f"role '{name}' already exists", code=codes.ALREADY_EXISTS)
        role = Role(id=new_record_id(), name=name, created_at=utc_now())
        self._roles[role.id] = role
        return role

    def rename_role(self, *, role_id: str, name: str) -> Role | None:
        role = self._roles.get(role_id)
        if role is None:
            return None
        existing = self.get_role_by_name(name=name)
        if existing is not None and existing.id != role_id:
            raise ConflictError(f"role '{name}' already exists", code=codes.ALREADY_EXISTS)
        renamed = role.model_copy(update={"name": name})
        self._roles[role_id] = renamed
        return renamed

    def delete_role(self, *, role_id: str) -> bool:
        if role_id not in self._roles:
            return False
        referenced = (
            any(member_role == role_id for _, member_role in self._caller_roles)
            or any(granted_role == role_id for granted_role, _ in self._role_permissions)
            or any(caller.default_role_id == role_id for caller in self._callers.values())
        )
        if referenced:
            raise ConflictError(
                f"role '{role_id}' is still referenced", code=codes.STILL_REFERENCED
            )
        del self._roles[role_id]
        return True

    def get_role_by_name(self, *, name: str) -> Role | None:
        return next((role for role in self._roles.values() if role.name == name), None)

    def create_permission(self, *, name: str, description: str = "") -> Permission:
        if self.get_permission_by_name(name=name) is not None:
            raise ConflictError(
                f"permission '{name}' already exists", code=codes.ALREADY_EXISTS
            )
        permission = Permission(
            id=new_record_id(), name=name, description=description, created_at=utc_now()
        )
        self._permissions[permission.id] = permission
        return permission

    def get_permission_by_name(self, *, name: str) -> Permission | None:
        return next(
            (item for item in self._permissions.values() if item.name == name), None
        )

    def create_caller(
        self, *, name: str, default_role_id: str | None = None
    ) -> CallerIdentity:
        if self.get_caller_by_name(name=name) is not None:
            raise ConflictError(f"caller '{name}' already exists", code=codes.ALREADY_EXISTS)
        if default_role_id is not None:
            self._require_role(default_role_id)
        caller = CallerIdentity(
            id=new_record_id(),
            name=name,
            default_role_id=default_role_id,
            created_at=utc_now(),
        )
        self._callers[caller.id] = caller
        return caller

    def get_caller(self, *, caller_id: str) -> CallerIdentity | None:
        return self._callers.get(caller_id)

    def get_caller_by_name(self, *, name: str) -> CallerIdentity | None:
        return next((item for item in self._callers.values() if item.name == name), None)

    def grant_role(self, *, caller_id: str, role_id: str) -> None:
        if caller_id not in self._callers:
            raise ValueError(f"unknown caller id: {caller_id}")
        self._require_role(role_id)
        self._caller_roles.add((caller_id, role_id))

    def withdraw_role(self, *, caller_id: str, role_id: str) -> bool:
        key = (caller_id, role_id)
        if key not in self._caller_roles:
            return False
        self._caller_roles.discard(key)
        return True

    def grant_permission(self, *, role_id: str, permission_id: str) -> None:
        self._require_role(role_id)
        self._require_permission(permission_id)
        self._role_permissions.add((role_id, permission_id))

    def withdraw_permission(self, *, role_id: str, permission_id: str) -> bool:
        key = (role_id, permission_id)
        if key not in self._role_permissions:
            return False
        self._role_permissions.discard(key)
        return True

    def list_role_names(self, *, caller_name: str) -> frozenset[str]:
        return frozenset(self._roles[role_id].name for role_id in self._role_ids(caller_name))

    def list_permission_names(self, *, caller_name: str) -> frozenset[str]:
        role_ids = self._role_ids(caller_name)
        return frozenset(
            self._permissions[permission_id].name
            for role_id, permission_id in self._role_permissions
            if role_id in role_ids
        )

    def create_endpoint_policy(
        self, *, service_name: str, endpoint_name: str, permission_id: str
    ) -> EndpointPolicy:
        permission = self._require_permission(permission_id)
        key = (service_name, endpoint_name)
        if key in self._endpoint_policies:
            raise ConflictError(
                f"endpoint '{service_name}.{endpoint_name}' already has a policy",
                code=codes.ALREADY_EXISTS,
            )
        policy_id = new_record_id()
        self._endpoint_policies[key] = (policy_id, permission.id)
        return EndpointPolicy(
            id=policy_id,
            service_name=service_name,
            endpoint_name=endpoint_name,
            required_permission_id=permission.id,
            required_permission=permission.name,
        )

    def delete_endpoint_policy(self, *, service_name: str, endpoint_name: str) -> bool:
        return self._endpoint_policies.pop((service_name, endpoint_name), None) is not None

    def get_endpoint_permission(
        self, *, service_name: str, endpoint_name: str
    ) -> str | None:
        entry = self._endpoint_policies.get((service_name, endpoint_name))
        if entry is None:
            return None
        return self._permissions[entry[1]].name

    def list_endpoint_policies(self, *, service_name: str) -> tuple[EndpointPolicy, ...]:
        return tuple(
            EndpointPolicy(
                id=policy_id,
                service_name=service,
                endpoint_name=endpoint,
                required_permission_id=permission_id,
                required_permission=self._permissions[permission_id].name,
            )
            for (service, endpoint), (policy_id, permission_id) in sorted(
                self._endpoint_policies.items()
            )
            if service == service_name
        )

    def insert_credential(self, *, credential: RotatingCredential) -> RotatingCredential:
        if credential.owner_caller_id not in self._callers:
            raise ValueError(f"unknown caller id: {credential.owner_caller_id}")
        if self.get_credential_by_secret(secret_value=credential.secret_value) is not None:
            raise ConflictError("credential secret already exists", code=codes.ALREADY_EXISTS)
        self._credentials[credential.id] = credential
        return credential

    def get_credential(self, *, credential_id: str) -> RotatingCredential | None:
        return self._credentials.get(credential_id)

    def get_credential_by_secret(self, *, secret_value: str) -> RotatingCredential | None:
        return next(
            (
                item
                for item in self._credentials.values()
                if item.secret_value == secret_value
            ),
            None,
        )

    def list_credentials(self, *, owner_caller_id: str) -> tuple[RotatingCredential, ...]:
        owned = [
            item
            for item in self._credentials.values()
            if item.owner_caller_id == owner_caller_id
        ]
        return tuple(sorted(owned, key=lambda item: (item.created_at, item.id)))

    def mark_credential_used(self, *, credential_id: str, used_at: datetime) -> None:
        credential = self._credentials.get(credential_id)
        if credential is not None:
            self._credentials[credential_id] = credential.model_copy(
                update={"last_used_at": used_at}
            )

    def mark_credential_revoked(self, *, credential_id: str) -> None:
        credential = self._credentials.get(credential_id)
        if credential is not None:
            self._credentials[credential_id] = credential.model_copy(
                update={"revoked": True}
            )

    def set_credential_expiry(
        self, *, credential_id: str, expires_at: datetime
    ) -> RotatingCredential | None:
        credential = self._credentials.get(credential_id)
        if credential is None:
            return None
        updated = credential.model_copy(update={"expires_at": expires_at})
        self._credentials[credential_id] = updated
        return updated

    def _role_ids(self, caller_name: str) -> set[str]:
        caller = self.get_caller_by_name(name=caller_name)
        if caller is None:
            return set()
        return {role_id for member, role_id in self._caller_roles if member == caller.id}

    def _require_role(self, role_id: str) -> Role:
        role = self._roles.get(role_id)
        if role is None:
            raise ValueError(f"unknown role id: {role_id}")
        return role

    def _require_permission(self, permission_id: str) -> Permission:
        permission = self._permissions.get(permission_id)
        if permission is None:
            raise ValueError(f"unknown permission id: {permission_id}")
        return permission


class SqlAccessRepository(AccessRepository):
    """SQL repository over access authority tables.

    Every method runs in its own transaction. SQLAlchemy failures surface as
    ``StoreError``; integrity violations surface as ``ConflictError``.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create_role(self, *, name: str) -> Role:
        role = Role(id=new_record_id(), name=name, created_at=utc_now())
        with self._session("create_role") as session:
            session.execute(insert(roles).values(**role.model_dump()))
        return role

    def rename_role(self, *, role_id: str, name: str) -> Role | None:
        with self._session("rename_role") as session:
            result = session.execute(
                update(roles).where(roles.c.id == role_id).values(name=name)
            )
            if result.rowcount == 0:
                return None
            row = session.execute(select(roles).where(roles.c.id == role_id)).mappings().one()
            return _to_role(row)

    def delete_role(self, *, role_id: str) -> bool:
        with self._session("delete_role") as session:
            found = session.scalar(select(exists().where(roles.c.id == role_id)))
            if not found:
                return False
            referenced = session.scalar(
                select(
                    or_(
                        exists().where(caller_roles.c.role_id == role_id),
                        exists().where(role_permissions.c.role_id == role_id),
                        exists().where(callers.c.default_role_id == role_id),
                    )
                )
            )
            if referenced:
                raise ConflictError(
                    f"role '{role_id}' is still referenced", code=codes.STILL_REFERENCED
                )
            session.execute(delete(roles).where(roles.c.id == role_id))
            return True

    def get_role_by_name(self, *, name: str) -> Role | None:
        with self._session("get_role_by_name") as session:
            row = (
                session.execute(select(roles).where(roles.c.name == name))
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_role(row)

    def create_permission(self, *, name: str, description: str = "") -> Permission:
        permission = Permission(
            id=new_record_id(), name=name, description=description, created_at=utc_now()
        )
        with self._session("create_permission") as session:
            session.execute(insert(permissions).values(**permission.model_dump()))
        return permission

    def get_permission_by_name(self, *, name: str) -> Permission | None:
        with self._session("get_permission_by_name") as session:
            row = (
                session.execute(select(permissions).where(permissions.c.name == name))
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_permission(row)

    def create_caller(
        self, *, name: str, default_role_id: str | None = None
    ) -> CallerIdentity:
        caller = CallerIdentity(
            id=new_record_id(),
            name=name,
            default_role_id=default_role_id,
            created_at=utc_now(),
        )
        with self._session("create_caller") as session:
            if default_role_id is not None:
                _require_row(session, roles.c.id, default_role_id, "role")
            session.execute(insert(callers).values(**caller.model_dump()))
        return caller

    def get_caller(self, *, caller_id: str) -> CallerIdentity | None:
        with self._session("get_caller") as session:
            row = (
                session.execute(select(callers).where(callers.c.id == caller_id))
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_caller(row)

    def get_caller_by_name(self, *, name: str) -> CallerIdentity | None:
        with self._session("get_caller_by_name") as session:
            row = (
                session.execute(select(callers).where(callers.c.name == name))
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_caller(row)

    def grant_role(self, *, caller_id: str, role_id: str) -> None:
        with self._session("grant_role") as session:
            _require_row(session, callers.c.id, caller_id, "caller")
            _require_row(session, roles.c.id, role_id, "role")
            already = session.scalar(
                select(
                    exists().where(
                        and_(
                            caller_roles.c.caller_id == caller_id,
                            caller_roles.c.role_id == role_id,
                        )
                    )
                )
            )
            if not already:
                session.execute(
                    insert(caller_roles).values(caller_id=caller_id, role_id=role_id)
                )

    def withdraw_role(self, *, caller_id: str, role_id: str) -> bool:
        with self._session("withdraw_role") as session:
            result = session.execute(
                delete(caller_roles)
                .where(caller_roles.c.caller_id == caller_id)
                .where(caller_roles.c.role_id == role_id)
            )
            return result.rowcount > 0

    def grant_permission(self, *, role_id: str, permission_id: str) -> None:
        with self._session("grant_permission") as session:
            _require_row(session, roles.c.id, role_id, "role")
            _require_row(session, permissions.c.id, permission_id, "permission")
            already = session.scalar(
                select(
                    exists().where(
                        and_(
                            role_permissions.c.role_id == role_id,
                            role_permissions.c.permission_id == permission_id,
                        )
                    )
                )
            )
            if not already:
                session.execute(
                    insert(role_permissions).values(
                        role_id=role_id, permission_id=permission_id
                    )
                )

    def withdraw_permission(self, *, role_id: str, permission_id: str) -> bool:
        with self._session("withdraw_permission") as session:
            result = session.execute(
                delete(role_permissions)
                .where(role_permissions.c.role_id == role_id)
                .where(role_permissions.c.permission_id == permission_id)
            )
            return result.rowcount > 0

    def list_role_names(self, *, caller_name: str) -> frozenset[str]:
        stmt = (
            select(roles.c.name)
            .select_from(
                callers.join(caller_roles, caller_roles.c.caller_id == callers.c.id).join(
                    roles, roles.c.id == caller_roles.c.role_id
                )
            )
            .where(callers.c.name == caller_name)
        )
        with self._session("list_role_names") as session:
            return frozenset(session.scalars(stmt).all())

    def list_permission_names(self, *, caller_name: str) -> frozenset[str]:
        stmt = (
            select(permissions.c.name)
            .distinct()
            .select_from(
                callers.join(caller_roles, caller_roles.c.caller_id == callers.c.id)
                .join(role_permissions, role_permissions.c.role_id == caller_roles.c.role_id)
                .join(permissions, permissions.c.id == role_permissions.c.permission_id)
            )
            .where(callers.c.name == caller_name)
        )
        with self._session("list_permission_names") as session:
            return frozenset(session.scalars(stmt).all())

    def create_endpoint_policy(
        self, *, service_name: str, endpoint_name: str, permission_id: str
    ) -> EndpointPolicy:
        policy_id = new_record_id()
        with self._session("create_endpoint_policy") as session:
            permission_name = session.scalar(
                select(permissions.c.name).where(permissions.c.id == permission_id)
            )
            if permission_name is None:
                raise ValueError(f"unknown permission id: {permission_id}")
            session.execute(
                insert(endpoint_policies).values(
                    id=policy_id,
                    service_name=service_name,
                    endpoint_name=endpoint_name,
                    required_permission_id=permission_id,
                )
            )
        return EndpointPolicy(
            id=policy_id,
            service_name=service_name,
            endpoint_name=endpoint_name,
            required_permission_id=permission_id,
            required_permission=permission_name,
        )

    def delete_endpoint_policy(self, *, service_name: str, endpoint_name: str) -> bool:
        with self._session("delete_endpoint_policy") as session:
            result = session.execute(
                delete(endpoint_policies)
                .where(endpoint_policies.c.service_name == service_name)
                .where(endpoint_policies.c.endpoint_name == endpoint_name)
            )
            return result.rowcount > 0

    def get_endpoint_permission(
        self, *, service_name: str, endpoint_name: str
    ) -> str | None:
        stmt = (
            select(permissions.c.name)
            .select_from(
                endpoint_policies.join(
                    permissions,
                    permissions.c.id == endpoint_policies.c.required_permission_id,
                )
            )
            .where(endpoint_policies.c.service_name == service_name)
            .where(endpoint_policies.c.endpoint_name == endpoint_name)
        )
        with self._session("get_endpoint_permission") as session:
            return session.scalar(stmt)

    def list_endpoint_policies(self, *, service_name: str) -> tuple[EndpointPolicy, ...]:
        stmt = (
            select(endpoint_policies, permissions.c.name.label("required_permission"))
            .select_from(
                endpoint_policies.join(
                    permissions,
                    permissions.c.id == endpoint_policies.c.required_permission_id,
                )
            )
            .where(endpoint_policies.c.service_name == service_name)
            .order_by(endpoint_policies.c.endpoint_name.asc())
        )
        with self._session("list_endpoint_policies") as session:
            rows = session.execute(stmt).mappings().all()
            return tuple(EndpointPolicy(**dict(row)) for row in rows)

    def insert_credential(self, *, credential: RotatingCredential) -> RotatingCredential:
        with self._session("insert_credential") as session:
            _require_row(session, callers.c.id, credential.owner_caller_id, "caller")
            session.execute(insert(credentials).values(**credential.model_dump()))
        return credential

    def get_credential(self, *, credential_id: str) -> RotatingCredential | None:
        with self._session("get_credential") as session:
            row = (
                session.execute(select(credentials).where(credentials.c.id == credential_id))
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_credential(row)

    def get_credential_by_secret(self, *, secret_value: str) -> RotatingCredential | None:
        with self._session("get_credential_by_secret") as session:
            row = (
                session.execute(
                    select(credentials).where(credentials.c.secret_value == secret_value)
                )
                .mappings()
                .one_or_none()
            )
            return None if row is None else _to_credential(row)

    def list_credentials(self, *, owner_caller_id: str) -> tuple[RotatingCredential, ...]:
        with self._session("list_credentials") as session:
            rows = (
                session.execute(
                    select(credentials)
                    .where(credentials.c.owner_caller_id == owner_caller_id)
                    .order_by(credentials.c.created_at.asc(), credentials.c.id.asc())
                )
                .mappings()
                .all()
            )
            return tuple(_to_credential(row) for row in rows)

    def mark_credential_used(self, *, credential_id: str, used_at: datetime) -> None:
        with self._session("mark_credential_used") as session:
            session.execute(
                update(credentials)
                .where(credentials.c.id == credential_id)
                .values(last_used_at=used_at)
            )

    def mark_credential_revoked(self, *, credential_id: str) -> None:
        with self._session("mark_credential_revoked") as session:
            session.execute(
                update(credentials)
                .where(credentials.c.id == credential_id)
                .values(revoked=True)
            )

    def set_credential_expiry(
        self, *, credential_id: str, expires_at: datetime
    ) -> RotatingCredential | None:
        with self._session("set_credential_expiry") as session:
            result = session.execute(
                update(credentials)
                .where(credentials.c.id == credential_id)
                .values(expires_at=expires_at)
            )
            if result.rowcount == 0:
                return None
            row = (
                session.execute(select(credentials).where(credentials.c.id == credential_id))
                .mappings()
                .one()
            )
            return _to_credential(row)

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        try:
            with transactional_session(self._session_factory) as session:
                yield session
        except IntegrityError as exc:
            detail = normalize_database_error(exc)
            raise ConflictError(
                f"access store {operation} conflicts with existing data",
                code=detail.code,
            ) from exc
        except SQLAlchemyError as exc:
            raise StoreError.from_exception(operation, exc) from exc


def _require_row(session: Session, column: Any, value: str, label: str) -> None:
    if not session.scalar(select(exists().where(column == value))):
        raise ValueError(f"unknown {label} id: {value}")


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps returned by drivers without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _to_role(row: Mapping[str, Any]) -> Role:
    return Role(id=row["id"], name=row["name"], created_at=_as_utc(row["created_at"]))


def _to_permission(row: Mapping[str, Any]) -> Permission:
    return Permission(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        created_at=_as_utc(row["created_at"]),
    )


def _to_caller(row: Mapping[str, Any]) -> CallerIdentity:
    return CallerIdentity(
        id=row["id"],
        name=row["name"],
        default_role_id=row["default_role_id"],
        created_at=_as_utc(row["created_at"]),
    )


def _to_credential(row: Mapping[str, Any]) -> RotatingCredential:
    return RotatingCredential(
        id=row["id"],
        secret_value=row["secret_value"],
        owner_caller_id=row["owner_caller_id"],
        expires_at=_as_utc(row["expires_at"]),
        created_at=_as_utc(row["created_at"]),
        last_used_at=_as_utc(row["last_used_at"]),
        revoked=bool(row["revoked"]),
    )
