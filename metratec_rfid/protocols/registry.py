# metratec_rfid/protocols/registry.py

from typing import Dict, List, Optional, Type
import logging

from metratec_rfid.protocols.base_dialect import BaseDialect
from metratec_rfid.protocols.at import ATHfDialect, ATUhfDialect
from metratec_rfid.protocols.ascii import AsciiHfDialect, AsciiUhfDialect

logger = logging.getLogger(__name__)

# Maps dialect name (str) to class (Type[BaseDialect])
_dialect_registry: Dict[str, Type[BaseDialect]] = {}


def register_dialect(name: str, dialect_class: Type[BaseDialect]) -> None:
    """
    Registers a dialect class with a given name.

    Args:
        name: The name to register the dialect under (e.g., "at_uhf").
        dialect_class: The class object implementing BaseDialect.

    Raises:
        ValueError: If the name or the class is invalid.
    """
    if not isinstance(name, str) or not name:
        raise ValueError("Dialect name must be a non-empty string.")
    if not isinstance(dialect_class, type) or not issubclass(dialect_class, BaseDialect):
        raise ValueError(f"dialect_class must be a subclass of BaseDialect, got {dialect_class}")

    if name in _dialect_registry:
        logger.warning(f"Dialect '{name}' is already registered. Overwriting with {dialect_class.__name__}.")

    logger.debug(f"Registering dialect '{name}' with class {dialect_class.__name__}")
    _dialect_registry[name] = dialect_class


def get_dialect_class(name: str) -> Optional[Type[BaseDialect]]:
    """Returns the dialect class registered under ``name``, or None."""
    return _dialect_registry.get(name)


def create_dialect(name: str, *args, **kwargs) -> BaseDialect:
    """
    Creates an instance of a registered dialect by name.

    Args:
        name: The name of the dialect to instantiate.
        *args: Positional arguments to pass to the dialect's constructor.
        **kwargs: Keyword arguments to pass to the dialect's constructor.

    Raises:
        ValueError: If the dialect name is not registered.
        TypeError: If arguments passed are incorrect for the dialect's constructor.
    """
    dialect_class = get_dialect_class(name)
    if dialect_class is None:
        raise ValueError(f"Dialect '{name}' is not registered. Available: {list_dialects()}")

    try:
        logger.debug(f"Creating instance of dialect '{name}' ({dialect_class.__name__})")
        return dialect_class(*args, **kwargs)
    except TypeError as e:
        logger.error(f"Failed to instantiate dialect '{name}' with args={args}, kwargs={kwargs}: {e}")
        raise TypeError(f"Failed to instantiate dialect '{name}': {e}") from e


def list_dialects() -> List[str]:
    """Returns a list of names of all registered dialects."""
    return list(_dialect_registry.keys())


def get_installed_dialects() -> List[Dict[str, str]]:
    """
    Returns information about all installed dialects.

    Returns:
        A list of dictionaries with the keys name, class_name, tag_kind and description.
    """
    dialects_info = []
    for name, dialect_class in _dialect_registry.items():
        dialects_info.append({
            "name": name,
            "class_name": dialect_class.__name__,
            "tag_kind": str(dialect_class.TAG_KIND),
            "description": dialect_class.DESCRIPTION or (dialect_class.__doc__ or "No description available").strip(),
        })
    return dialects_info


# --- Auto-register the dialects implemented in this library ---
register_dialect(ATUhfDialect.NAME, ATUhfDialect)
register_dialect(ATHfDialect.NAME, ATHfDialect)
register_dialect(AsciiUhfDialect.NAME, AsciiUhfDialect)
register_dialect(AsciiHfDialect.NAME, AsciiHfDialect)
