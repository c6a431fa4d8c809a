"""
Hierarchical namespaces that isolate memory records between tenants.

A namespace is an ordered, non-empty sequence of non-blank segments such as
``("org-abc", "user-123")``. Its slash-joined path (``"org-abc/user-123"``) is the key
every storage backend scopes queries by, so two namespaces are the same tenant iff
their segments are equal.

Templates such as ``("{org_id}", "{user_id}")`` are resolved at runtime:

    >>> NamespaceTemplate.of('user', '{user_id}').resolve({'user_id': '42'}).to_path()
    'user/42'
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Tuple

from ..exceptions import InvalidNamespaceError, MemoryValidationError, MissingVariableError

DELIMITER = '/'
GLOBAL_SEGMENT = '__global__'

_VARIABLE_PATTERN = re.compile(r'\{([^}]+)\}')


def _validate_segment(segment: Optional[str]) -> str:
    if segment is None or not isinstance(segment, str) or not segment.strip():
        raise InvalidNamespaceError('Namespace parts cannot be null or blank')
    return segment


@dataclass(frozen=True)
class Namespace:
    """Immutable hierarchical tenant key."""
    parts: Tuple[str, ...]

    def __post_init__(self):
        if not self.parts:
            raise InvalidNamespaceError('Namespace must have at least one part')
        for part in self.parts:
            _validate_segment(part)

    @classmethod
    def of(cls, *parts: str) -> 'Namespace':
        """Create a namespace from path parts; no parts yields the global namespace."""
        if not parts:
            return GLOBAL_NAMESPACE
        return cls(tuple(parts))

    @classmethod
    def from_parts(cls, parts: Optional[Iterable[str]]) -> 'Namespace':
        parts = tuple(parts or ())
        return cls.of(*parts)

    @staticmethod
    def global_namespace() -> 'Namespace':
        return GLOBAL_NAMESPACE

    @classmethod
    def for_user(cls, user_id: str) -> 'Namespace':
        return cls.of('user', user_id)

    @classmethod
    def for_session(cls, session_id: str) -> 'Namespace':
        return cls.of('session', session_id)

    @classmethod
    def from_path(cls, path: Optional[str]) -> 'Namespace':
        """Parse a namespace from a path string like "org/user/app"."""
        if path is None or not path.strip():
            return GLOBAL_NAMESPACE
        return cls.of(*path.split(DELIMITER))

    @property
    def first(self) -> str:
        return self.parts[0]

    @property
    def last(self) -> str:
        return self.parts[-1]

    @property
    def depth(self) -> int:
        return len(self.parts)

    @property
    def is_global(self) -> bool:
        return self.parts == (GLOBAL_SEGMENT,)

    def child(self, part: str) -> 'Namespace':
        """Return a new namespace with part appended."""
        return Namespace(self.parts + (_validate_segment(part),))

    def parent(self) -> 'Namespace':
        """Drop the last part; the global namespace when at the root."""
        if len(self.parts) <= 1:
            return GLOBAL_NAMESPACE
        return Namespace(self.parts[:-1])

    def starts_with(self, prefix: 'Namespace') -> bool:
        if prefix.depth > self.depth:
            return False
        return self.parts[:prefix.depth] == prefix.parts

    def to_path(self) -> str:
        return DELIMITER.join(self.parts)

    def __str__(self) -> str:
        return f'Namespace({self.to_path()})'


GLOBAL_NAMESPACE = Namespace((GLOBAL_SEGMENT,))


@dataclass(frozen=True)
class NamespaceTemplate:
    """Namespace parts with ``{variable}`` placeholders, resolved per request."""
    parts: Tuple[str, ...]

    def __post_init__(self):
        if not self.parts:
            raise MemoryValidationError('Template must have at least one part')

    @classmethod
    def of(cls, *parts: str) -> 'NamespaceTemplate':
        return cls(tuple(parts))

    @classmethod
    def from_path(cls, path: Optional[str]) -> 'NamespaceTemplate':
        """Create a template from a path like "user/{user_id}"."""
        if path is None or not path.strip():
            raise MemoryValidationError('Template path cannot be null or blank')
        return cls.of(*path.split(DELIMITER))

    def resolve(self, variables: Mapping[str, str]) -> Namespace:
        """Substitute every placeholder.

        Raises:
            MissingVariableError: naming the first placeholder with no value
            InvalidNamespaceError: if a part resolves to a blank segment
        """
        return Namespace.of(*[self._resolve_part(part, variables) for part in self.parts])

    def resolve_for_user(self, user_id: str) -> Namespace:
        return self.resolve({'user_id': user_id})

    def resolve_for_session(self, session_id: str) -> Namespace:
        return self.resolve({'session_id': session_id})

    @property
    def has_variables(self) -> bool:
        return any(_VARIABLE_PATTERN.search(part) for part in self.parts)

    @property
    def variable_names(self) -> List[str]:
        return [name for part in self.parts for name in _VARIABLE_PATTERN.findall(part)]

    @staticmethod
    def _resolve_part(part: str, variables: Mapping[str, str]) -> str:

        def substitute(match: 're.Match[str]') -> str:
            name = match.group(1)
            value = variables.get(name)
            if value is None:
                raise MissingVariableError(name)
            return str(value)

        return _VARIABLE_PATTERN.sub(substitute, part)

    def __str__(self) -> str:
        return f'NamespaceTemplate({DELIMITER.join(self.parts)})'


USER_SCOPED = NamespaceTemplate.of('user', '{user_id}')
SESSION_SCOPED = NamespaceTemplate.of('session', '{session_id}')
ORG_USER_SCOPED = NamespaceTemplate.of('{org_id}', '{user_id}')
