"""Service id and parameter naming templates.

Every id the extension registers, and every reference it builds, comes from the
same :class:`ServiceNames` instance. A reference therefore always names a key
that is registered with the identical template.
"""

from dataclasses import dataclass
from typing import NewType

from couchdb_bundle.domain import Reference

__all__ = ["ServiceId", "ServiceNames", "DEFAULT_PREFIX", "names", "placeholder"]

ServiceId = NewType("ServiceId", str)

DEFAULT_PREFIX = "doctrine_couchdb"


@dataclass(frozen=True)
class ServiceNames:
    """Builds service ids and parameter names under a common prefix.

    Example:
        >>> names = ServiceNames()
        >>> names.document_manager("default")
        'doctrine_couchdb.odm.default_document_manager'
    """

    prefix: str = DEFAULT_PREFIX

    def reference(self, service_id: ServiceId) -> Reference:
        return Reference(service_id)

    # client

    def connection(self, name: str) -> ServiceId:
        return ServiceId(f"{self.prefix}.client.{name}_connection")

    def http_client(self, name: str) -> ServiceId:
        return ServiceId(f"{self.prefix}.httpclient.{name}_client")

    @property
    def connection_parent(self) -> ServiceId:
        return ServiceId(f"{self.prefix}.client.connection")

    @property
    def data_collector(self) -> ServiceId:
        return ServiceId(f"{self.prefix}.datacollector")

    # odm

    def odm_element(self, name: str) -> ServiceId:
        return ServiceId(f"{self.prefix}.odm.{name}")

    def configuration(self, manager: str) -> ServiceId:
        return self.odm_element(f"{manager}_configuration")

    def metadata_driver(self, manager: str) -> ServiceId:
        return self.odm_element(f"{manager}_metadata_driver")

    def mapping_driver(self, manager: str, driver_type: str) -> ServiceId:
        return self.odm_element(f"{manager}_{driver_type}_metadata_driver")

    def metadata_cache(self, manager: str) -> ServiceId:
        return self.odm_element(f"{manager}_metadata_cache")

    def cache(self, manager: str, cache_name: str) -> ServiceId:
        return self.odm_element(f"{manager}_{cache_name}")

    def cache_instance(self, manager: str, kind: str) -> ServiceId:
        return self.odm_element(f"{manager}_{kind}_instance")

    def event_manager(self, manager: str) -> ServiceId:
        return self.odm_element(f"{manager}_connection.event_manager")

    def document_manager(self, manager: str) -> ServiceId:
        return self.odm_element(f"{manager}_document_manager")

    @property
    def configuration_parent(self) -> ServiceId:
        return self.odm_element("configuration")

    @property
    def document_manager_parent(self) -> ServiceId:
        return self.odm_element("document_manager.abstract")

    @property
    def event_manager_parent(self) -> ServiceId:
        return self.odm_element("document_manager.event_manager")

    @property
    def annotation_reader(self) -> ServiceId:
        return self.odm_element("metadata.annotation_reader")

    # patterns consumed by mapping passes, formatted with a manager name

    @property
    def metadata_driver_pattern(self) -> str:
        return f"{self.prefix}.odm.%s_metadata_driver"

    @property
    def configuration_pattern(self) -> str:
        return f"{self.prefix}.odm.%s_configuration"

    # parameters

    def parameter(self, name: str) -> str:
        return f"{self.prefix}.{name}"

    def odm_parameter(self, name: str) -> str:
        return f"{self.prefix}.odm.{name}"

    def class_parameter(self, key: str) -> str:
        return f"{self.prefix}.{key}.class"

    @property
    def default_document_manager_parameter(self) -> str:
        return self.parameter("default_document_manager")


def placeholder(parameter: str) -> str:
    """Wrap a parameter name so the container substitutes its value."""
    return f"%{parameter}%"


names = ServiceNames()
