"""CouchDB client and document mapper integration for service containers.

The bundle compiles a ``doctrine_couchdb`` configuration tree into a static
graph of service definitions: connections, document managers, metadata drivers,
caches and design document registrations. The CouchDB client and the document
mapper themselves are external libraries; services only name their classes.

Basic Usage:
    >>> from couchdb_bundle.builders import make_manifest
    >>>
    >>> manifest = make_manifest({
    ...     "client": {"dbname": "blog"},
    ...     "odm": {"auto_mapping": True},
    ... })
    >>> "doctrine_couchdb.odm.default_document_manager" in manifest
    True

The package consists of several modules:
    - builders: High-level container construction functions
    - extension: Configuration to service definition translation
    - mapping: Compiler passes for bundles registering their own mappings
    - mapping_loader: Mapping driver resolution and design document discovery
    - container: The service registry
    - manifest: Service graph validation
    - configuration: Configuration schema
    - errors: Package-specific exceptions
"""
