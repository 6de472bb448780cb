from abc import ABC, abstractmethod

from eventpipe.utils import logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Dict
    from typing import Iterator
    from typing import Optional
    from typing import Sequence
    from typing import Type

    from eventpipe.client import _Client


_DEFAULT_INTEGRATIONS = [
    "eventpipe.integrations.dedupe.DedupeIntegration",
]


def iter_default_integrations() -> "Iterator[Type[Integration]]":
    """Returns an iterator of the default integration classes."""
    from importlib import import_module

    for import_string in _DEFAULT_INTEGRATIONS:
        try:
            module, cls = import_string.rsplit(".", 1)
            yield getattr(import_module(module), cls)
        except (DidNotEnable, SyntaxError) as e:
            logger.debug("Did not import default integration %s: %s", import_string, e)


def setup_integrations(
    integrations: "Optional[Sequence[Integration]]",
    client: "_Client",
    with_defaults: bool = True,
) -> "Dict[str, Integration]":
    """
    Given a list of integration instances, this sets them all up for `client`.

    When `with_defaults` is set to `True` all default integrations are added
    unless an instance with the same identifier was passed explicitly.
    """
    integrations_by_id = dict(
        (integration.identifier, integration) for integration in integrations or ()
    )

    logger.debug("Setting up integrations (with default = %s)", with_defaults)

    # Integrations that are not explicitly set up by the user.
    used_as_default_integration = set()

    if with_defaults:
        for integration_cls in iter_default_integrations():
            if integration_cls.identifier not in integrations_by_id:
                instance = integration_cls()
                integrations_by_id[instance.identifier] = instance
                used_as_default_integration.add(instance.identifier)

    installed = {}  # type: Dict[str, Integration]
    for identifier, integration in integrations_by_id.items():
        try:
            integration.setup(client)
        except DidNotEnable as e:
            if identifier not in used_as_default_integration:
                raise

            logger.debug("Did not enable default integration %s: %s", identifier, e)
        else:
            logger.debug("Enabling integration %s", identifier)
            installed[identifier] = integration

    return installed


class DidNotEnable(Exception):  # noqa: N818
    """
    The integration could not be enabled.

    This exception is silently swallowed for default integrations, but reraised
    for explicitly enabled integrations.
    """


class Integration(ABC):
    """Baseclass for all integrations.

    To accept options for an integration, implement your own constructor that
    saves those options on `self`.
    """

    identifier = None  # type: str
    """String unique ID of integration type"""

    @abstractmethod
    def setup(self, client: "_Client") -> None:
        """
        Initialize the integration for `client`.

        Called once per client, typically to register event processors.
        """
        pass


__all__ = [
    "DidNotEnable",
    "Integration",
    "iter_default_integrations",
    "setup_integrations",
]
