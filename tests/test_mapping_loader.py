from pathlib import Path

import pytest

from couchdb_bundle.builders import make_container, make_manifest
from couchdb_bundle.bundle import KernelBundle
from couchdb_bundle.container import ContainerBuilder
from couchdb_bundle.domain import Definition, MethodCall, Reference
from couchdb_bundle.errors import InvalidMappingError
from couchdb_bundle.mapping import create_xml_mapping_driver
from couchdb_bundle.mapping_loader import (
    MappingResolution,
    detect_metadata_driver,
    discover_design_documents,
    register_mapping_drivers,
)
from couchdb_bundle.naming import names
from couchdb_bundle.resources import FOLDER_DESIGN_DOCUMENT_CLASS

CLIENT = {"client": {"dbname": "app"}}


def make_bundle(root: Path, name: str, namespace: str, files=(), dirs=()) -> KernelBundle:
    path = root.joinpath(*namespace.split("."))
    path.mkdir(parents=True)
    for directory in dirs:
        (path / directory).mkdir(parents=True)
    for file in files:
        (path / file).parent.mkdir(parents=True, exist_ok=True)
        (path / file).write_text("")
    return KernelBundle(name, namespace, path)


@pytest.fixture
def blog(tmp_path) -> KernelBundle:
    return make_bundle(
        tmp_path,
        "AcmeBlog",
        "acme.blog",
        files=["Resources/config/doctrine/Article.couchdb.xml", "Resources/couchdb/README"],
        dirs=["Resources/couchdb/comments", "Resources/couchdb/articles"],
    )


@pytest.fixture
def shop(tmp_path) -> KernelBundle:
    return make_bundle(
        tmp_path,
        "AcmeShop",
        "acme.shop",
        files=["documents/product.py"],
        dirs=["Resources/couchdb/products"],
    )


@pytest.fixture
def empty(tmp_path) -> KernelBundle:
    return make_bundle(tmp_path, "AcmeEmpty", "acme.empty")


def configuration(container, manager="default") -> Definition:
    return container.get_definition(names.configuration(manager))


def test_auto_mapping_registers_bundle_drivers(blog, shop, empty):
    container = make_container({**CLIENT, "odm": {"auto_mapping": True}}, bundles=[blog, shop, empty])

    xml_driver = container.get_definition("doctrine_couchdb.odm.default_xml_metadata_driver")
    assert xml_driver.class_name == "%doctrine_couchdb.odm.metadata.xml.class%"
    assert xml_driver.arguments == [
        {str((blog.path / "Resources/config/doctrine").resolve()): "acme.blog.documents"}
    ]
    assert xml_driver.method_calls == [MethodCall("setGlobalBasename", ("mapping",))]

    annotation_driver = container.get_definition("doctrine_couchdb.odm.default_annotation_metadata_driver")
    assert annotation_driver.arguments == [
        Reference("doctrine_couchdb.odm.metadata.annotation_reader"),
        [str((shop.path / "documents").resolve())],
    ]

    chain = container.get_definition("doctrine_couchdb.odm.default_metadata_driver")
    assert chain.class_name == "%doctrine_couchdb.odm.metadata.driver_chain.class%"
    assert chain.method_calls == [
        MethodCall("addDriver", (Reference("doctrine_couchdb.odm.default_xml_metadata_driver"), "acme.blog.documents")),
        MethodCall("addDriver", (Reference("doctrine_couchdb.odm.default_annotation_metadata_driver"), "acme.shop.documents")),
    ]

    assert configuration(container).method_calls_named("setDocumentNamespaces") == [
        MethodCall(
            "setDocumentNamespaces",
            ({"AcmeBlog": "acme.blog.documents", "AcmeShop": "acme.shop.documents"},),
        )
    ]


def test_auto_mapping_discovers_design_documents(blog, shop, empty):
    container = make_container({**CLIENT, "odm": {"auto_mapping": True}}, bundles=[blog, shop, empty])

    assert configuration(container).method_calls_named("addDesignDocument") == [
        MethodCall(
            "addDesignDocument",
            ("articles", FOLDER_DESIGN_DOCUMENT_CLASS, str(blog.path / "Resources/couchdb/articles")),
        ),
        MethodCall(
            "addDesignDocument",
            ("comments", FOLDER_DESIGN_DOCUMENT_CLASS, str(blog.path / "Resources/couchdb/comments")),
        ),
        MethodCall(
            "addDesignDocument",
            ("products", FOLDER_DESIGN_DOCUMENT_CLASS, str(shop.path / "Resources/couchdb/products")),
        ),
    ]


def test_design_documents_come_before_namespaces(blog):
    container = make_container({**CLIENT, "odm": {"auto_mapping": True}}, bundles=[blog])

    methods = [call.method for call in configuration(container).method_calls]
    assert methods[:3] == ["addDesignDocument", "addDesignDocument", "setDocumentNamespaces"]


def test_auto_mapping_keeps_explicit_bundle_mapping(blog, shop):
    container = make_container(
        {**CLIENT, "odm": {"auto_mapping": True, "mappings": {"AcmeBlog": {"mapping": False}}}},
        bundles=[blog, shop],
    )

    assert not container.has_definition("doctrine_couchdb.odm.default_xml_metadata_driver")
    assert configuration(container).method_calls_named("setDocumentNamespaces")[0].arguments == (
        {"AcmeShop": "acme.shop.documents"},
    )
    design_documents = [call.arguments[0] for call in configuration(container).method_calls_named("addDesignDocument")]
    assert design_documents == ["products"]


def test_bundle_mapping_options(blog):
    (blog.path / "model").mkdir()
    container = make_container(
        {
            **CLIENT,
            "odm": {
                "mappings": {
                    "AcmeBlog": {"type": "yml", "dir": "model", "prefix": "acme.blog.model", "alias": "Blog"}
                }
            },
        },
        bundles=[blog],
    )

    driver = container.get_definition("doctrine_couchdb.odm.default_yml_metadata_driver")
    assert driver.arguments == [{str((blog.path / "model").resolve()): "acme.blog.model"}]
    calls = configuration(container).method_calls_named("setDocumentNamespaces")
    assert calls[0].arguments == ({"Blog": "acme.blog.model"},)
    assert len(configuration(container).method_calls_named("addDesignDocument")) == 2


def test_plain_directory_mapping(tmp_path):
    (tmp_path / "model").mkdir()
    container = make_container(
        {
            **CLIENT,
            "odm": {
                "mappings": {
                    "Model": {"type": "staticphp", "dir": "%kernel.project_dir%/model", "prefix": "app.model"}
                }
            },
        },
        parameters={"kernel.project_dir": str(tmp_path)},
    )

    driver = container.get_definition("doctrine_couchdb.odm.default_staticphp_metadata_driver")
    assert driver.arguments == [[str((tmp_path / "model").resolve())]]
    assert not driver.method_calls
    assert configuration(container).method_calls_named("addDesignDocument") == []


def test_unknown_bundle_fails():
    with pytest.raises(InvalidMappingError, match='Bundle "Missing" does not exist or it is not enabled'):
        make_container({**CLIENT, "odm": {"mappings": {"Missing": None}}})


def test_mapping_without_prefix_fails(tmp_path):
    with pytest.raises(InvalidMappingError, match='require at least the "type", "dir" and "prefix"'):
        make_container({**CLIENT, "odm": {"mappings": {"Model": {"type": "xml", "dir": str(tmp_path)}}}})


def test_mapping_with_missing_directory_fails(tmp_path):
    with pytest.raises(InvalidMappingError, match="non-existing directory"):
        make_container(
            {
                **CLIENT,
                "odm": {
                    "mappings": {
                        "Model": {"type": "xml", "dir": str(tmp_path / "nope"), "prefix": "a", "is_bundle": False}
                    }
                },
            }
        )


def test_unsupported_mapping_type_fails(tmp_path):
    with pytest.raises(InvalidMappingError, match='Can only configure "xml", "yml"'):
        make_container(
            {**CLIENT, "odm": {"mappings": {"Model": {"type": "json", "dir": str(tmp_path), "prefix": "a"}}}}
        )


def test_bundle_state_does_not_leak_between_managers(blog, tmp_path):
    (tmp_path / "catalog").mkdir()
    container = make_container(
        {
            **CLIENT,
            "odm": {
                "document_managers": {
                    "blog": {"mappings": {"AcmeBlog": None}},
                    "catalog": {
                        "mappings": {
                            "Catalog": {"type": "xml", "dir": str(tmp_path / "catalog"), "prefix": "acme.blog.catalog"}
                        }
                    },
                }
            },
        },
        bundles=[blog],
    )

    assert len(configuration(container, "blog").method_calls_named("addDesignDocument")) == 2
    catalog = configuration(container, "catalog")
    assert catalog.method_calls_named("addDesignDocument") == []
    assert catalog.method_calls_named("setDocumentNamespaces")[0].arguments == (
        {"Catalog": "acme.blog.catalog"},
    )
    assert container.has_definition("doctrine_couchdb.odm.catalog_xml_metadata_driver")
    assert not container.has_definition("doctrine_couchdb.odm.catalog_annotation_metadata_driver")


def test_design_document_registered_once_per_matching_pair(tmp_path):
    bundle_dir = tmp_path / "acme"
    (bundle_dir / "Resources/couchdb/views").mkdir(parents=True)
    resolution = MappingResolution(
        alias_map={"A": "acme.blog", "B": "other.model"},
        bundle_dirs={"acme": bundle_dir, "other": tmp_path / "other"},
    )
    definition = Definition("Configuration")

    discover_design_documents(resolution, definition)

    assert definition.method_calls == [
        MethodCall("addDesignDocument", ("views", FOLDER_DESIGN_DOCUMENT_CLASS, str(bundle_dir / "Resources/couchdb/views")))
    ]


def test_existing_driver_definitions_are_extended(tmp_path):
    container = ContainerBuilder()
    container.set_definition(
        "doctrine_couchdb.odm.default_annotation_metadata_driver",
        Definition("CustomAnnotationDriver", [Reference("reader"), ["/srv/legacy"]]),
    )
    resolution = MappingResolution(drivers={"annotation": {"acme.documents": "/srv/acme"}})

    register_mapping_drivers("default", resolution, container, names)

    driver = container.get_definition("doctrine_couchdb.odm.default_annotation_metadata_driver")
    assert driver.class_name == "CustomAnnotationDriver"
    assert driver.arguments == [Reference("reader"), ["/srv/acme", "/srv/legacy"]]
    assert not driver.public


def test_detect_metadata_driver(tmp_path):
    assert detect_metadata_driver(tmp_path) is None

    (tmp_path / "documents").mkdir()
    assert detect_metadata_driver(tmp_path) == "annotation"

    config_dir = tmp_path / "Resources/config/doctrine"
    config_dir.mkdir(parents=True)
    (config_dir / "Article.couchdb.php").write_text("")
    assert detect_metadata_driver(tmp_path) == "php"

    (config_dir / "Article.couchdb.yml").write_text("")
    assert detect_metadata_driver(tmp_path) == "yml"

    (config_dir / "Article.couchdb.xml").write_text("")
    assert detect_metadata_driver(tmp_path) == "xml"


def test_bundle_mapping_pass_compiles_with_extension(blog):
    mappings_pass = create_xml_mapping_driver(
        {str(blog.path / "mapping"): "acme.blog.model"},
        ["acme_blog.document_manager"],
        alias_map={"BlogModel": "acme.blog.model"},
    )

    manifest = make_manifest(
        {**CLIENT, "odm": {"auto_mapping": True}},
        bundles=[blog],
        compiler_passes=[mappings_pass],
    )

    chain = manifest.definitions["doctrine_couchdb.odm.default_metadata_driver"]
    assert chain.method_calls[-1] == MethodCall("addDriver", (mappings_pass.driver, "acme.blog.model"))
    assert configuration_calls(manifest)[-1] == MethodCall("addDocumentNamespace", ("BlogModel", "acme.blog.model"))


def configuration_calls(manifest):
    return manifest.definitions["doctrine_couchdb.odm.default_configuration"].method_calls


def test_existing_file_driver_locations_are_merged():
    container = ContainerBuilder()
    container.set_definition(
        "doctrine_couchdb.odm.default_xml_metadata_driver",
        Definition("CustomXmlDriver", [{"/srv/legacy": "legacy.model"}]),
    )
    resolution = MappingResolution(drivers={"xml": {"acme.documents": "/srv/acme"}})

    register_mapping_drivers("default", resolution, container, names)

    driver = container.get_definition("doctrine_couchdb.odm.default_xml_metadata_driver")
    assert driver.class_name == "CustomXmlDriver"
    assert driver.arguments == [{"/srv/legacy": "legacy.model", "/srv/acme": "acme.documents"}]
    assert driver.method_calls == [MethodCall("setGlobalBasename", ("mapping",))]
    chain = container.get_definition("doctrine_couchdb.odm.default_metadata_driver")
    assert chain.method_calls == [
        MethodCall("addDriver", (Reference("doctrine_couchdb.odm.default_xml_metadata_driver"), "acme.documents"))
    ]


def test_existing_driver_without_arguments_receives_defaults():
    container = ContainerBuilder()
    container.set_definition("doctrine_couchdb.odm.default_yml_metadata_driver", Definition("CustomYmlDriver"))
    container.set_definition(
        "doctrine_couchdb.odm.default_annotation_metadata_driver", Definition("CustomAnnotationDriver")
    )
    resolution = MappingResolution(
        drivers={"yml": {"acme.model": "/srv/model"}, "annotation": {"acme.documents": "/srv/acme"}}
    )

    register_mapping_drivers("default", resolution, container, names)

    yml_driver = container.get_definition("doctrine_couchdb.odm.default_yml_metadata_driver")
    assert yml_driver.class_name == "CustomYmlDriver"
    assert yml_driver.arguments == [{"/srv/model": "acme.model"}]
    annotation_driver = container.get_definition("doctrine_couchdb.odm.default_annotation_metadata_driver")
    assert annotation_driver.arguments == [
        Reference("doctrine_couchdb.odm.metadata.annotation_reader"),
        ["/srv/acme"],
    ]


def test_design_documents_registered_for_each_alias_of_a_prefix(tmp_path):
    bundle_dir = tmp_path / "blog"
    (bundle_dir / "Resources/couchdb/views").mkdir(parents=True)
    resolution = MappingResolution(
        alias_map={"Blog": "acme.blog.documents", "Posts": "acme.blog.documents"},
        bundle_dirs={"acme.blog": bundle_dir},
    )
    definition = Definition("Configuration")

    discover_design_documents(resolution, definition)

    assert [call.arguments[0] for call in definition.method_calls_named("addDesignDocument")] == [
        "views",
        "views",
    ]


def test_bundle_mapping_dir_stays_inside_bundle(blog):
    (blog.path / "model").mkdir()
    container = make_container(
        {
            **CLIENT,
            "odm": {
                "mappings": {
                    "AcmeBlog": {"type": "xml", "dir": "/model", "prefix": "acme.blog.model", "is_bundle": True}
                }
            },
        },
        bundles=[blog],
    )

    driver = container.get_definition("doctrine_couchdb.odm.default_xml_metadata_driver")
    assert driver.arguments == [{str((blog.path / "model").resolve()): "acme.blog.model"}]


def test_documents_file_is_not_an_annotation_mapping(tmp_path):
    (tmp_path / "documents").write_text("")

    assert detect_metadata_driver(tmp_path) is None
