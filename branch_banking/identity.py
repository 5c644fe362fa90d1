"""
Identity Module

Interfaces to the identity and authorization collaborators: who is acting,
with which role, and whether a customer exists. Credential checks happen
upstream of this layer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Set, Union

from .errors import AuthorizationError, InvalidArgumentError, NotFoundError
from .storage import DELIMITER, StorageInterface


class Role(Enum):
    """User roles"""
    CUSTOMER = "customer"
    BANKER = "banker"

    @classmethod
    def parse(cls, value: Union["Role", str]) -> "Role":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidArgumentError("User role must be either customer or banker")


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an operation runs"""
    id: str
    role: Role

    @property
    def is_banker(self) -> bool:
        return self.role == Role.BANKER

    def can_operate(self, owner_id: str) -> bool:
        """Bankers may operate any account; customers only their own"""
        return self.is_banker or self.id == owner_id


class IdentityProvider(ABC):
    """Abstract identity and authorization provider"""

    @abstractmethod
    def owner_exists(self, customer_id: str) -> bool:
        """Check if a customer with this ID exists"""
        pass

    @abstractmethod
    def role_of(self, user_id: str) -> Optional[Role]:
        """Role of a known user, or None if the directory has no such user"""
        pass

    @abstractmethod
    def current_actor(self) -> Actor:
        """
        The acting user
        
        Raises:
            AuthorizationError: If nobody is logged in
        """
        pass


class StaticIdentityProvider(IdentityProvider):
    """In-memory identity provider for tests and request-scoped callers"""

    def __init__(self, customers: Iterable[str] = (), actor: Optional[Actor] = None,
                 bankers: Iterable[str] = ()):
        self._customers: Set[str] = set(customers)
        self._bankers: Set[str] = set(bankers)
        self._actor = actor

    def add_customer(self, customer_id: str) -> None:
        self._customers.add(customer_id)

    def set_actor(self, actor: Optional[Actor]) -> None:
        self._actor = actor

    def role_of(self, user_id: str) -> Optional[Role]:
        if user_id in self._bankers:
            return Role.BANKER
        if user_id in self._customers:
            return Role.CUSTOMER
        return None

    def owner_exists(self, customer_id: str) -> bool:
        return customer_id in self._customers

    def current_actor(self) -> Actor:
        if self._actor is None:
            raise AuthorizationError("No user is logged in")
        return self._actor


USER_ROW_MIN_FIELDS = 4


class FileIdentityProvider(IdentityProvider):
    """
    Identity provider over the users table.
    
    Row layout: ``cpr;firstName;lastName;role;hashedPassword;passwordSalt``.
    Only the CPR and role columns are read here.
    """

    def __init__(self, storage: StorageInterface, table: str = "users"):
        self.storage = storage
        self.table = table
        self._actor: Optional[Actor] = None

    def role_of(self, user_id: str) -> Optional[Role]:
        for line in self.storage.iter_lines(self.table):
            fields = line.split(DELIMITER)
            if len(fields) < USER_ROW_MIN_FIELDS:
                continue
            if fields[0].strip() == user_id:
                return Role.parse(fields[3])
        return None

    def owner_exists(self, customer_id: str) -> bool:
        return self.role_of(customer_id) is not None

    def set_actor(self, customer_id: str) -> Actor:
        """Make an existing user the acting user"""
        role = self.role_of(customer_id)
        if role is None:
            raise NotFoundError(f"A user with username {customer_id} does not exist")
        self._actor = Actor(customer_id, role)
        return self._actor

    def current_actor(self) -> Actor:
        if self._actor is None:
            raise AuthorizationError("No user is logged in")
        return self._actor


class ScopedIdentityProvider(IdentityProvider):
    """Fixed acting user over another provider's customer directory"""

    def __init__(self, directory: IdentityProvider, actor: Actor):
        self._directory = directory
        self._actor = actor

    def owner_exists(self, customer_id: str) -> bool:
        return self._directory.owner_exists(customer_id)

    def role_of(self, user_id: str) -> Optional[Role]:
        return self._directory.role_of(user_id)

    def current_actor(self) -> Actor:
        return self._actor
