import pytest

from couchdb_bundle.container import ContainerBuilder
from couchdb_bundle.domain import Definition, MethodCall, Reference
from couchdb_bundle.errors import ParameterNotFoundError
from couchdb_bundle.mapping import (
    Annotation,
    MappingsPass,
    PlainClass,
    StaticDeclaration,
    Xml,
    Yaml,
    create_annotation_mapping_driver,
    create_mapping_driver,
    create_php_mapping_driver,
    create_static_mapping_driver,
    create_xml_mapping_driver,
    create_yaml_mapping_driver,
    driver_definition,
)
from couchdb_bundle.resources import FILE_LOCATOR_CLASS, ODM_CLASSES

DEFAULT_MANAGER_PARAMETER = "doctrine_couchdb.default_document_manager"
MAPPINGS = {"/srv/acme/blog/mapping": "acme.blog.model"}


@pytest.fixture
def container() -> ContainerBuilder:
    container = ContainerBuilder({DEFAULT_MANAGER_PARAMETER: "default"})
    container.set_definition("doctrine_couchdb.odm.default_metadata_driver", Definition("Chain"))
    container.set_definition("doctrine_couchdb.odm.default_configuration", Definition("Configuration"))
    container.set_definition("doctrine_couchdb.odm.blog_metadata_driver", Definition("Chain"))
    container.set_definition("doctrine_couchdb.odm.blog_configuration", Definition("Configuration"))
    return container


@pytest.mark.parametrize(
    "factory, driver_class, suffix",
    [
        (create_xml_mapping_driver, ODM_CLASSES["odm.metadata.xml"], ".couchdb.xml"),
        (create_yaml_mapping_driver, ODM_CLASSES["odm.metadata.yml"], ".couchdb.yml"),
        (create_php_mapping_driver, ODM_CLASSES["odm.metadata.php"], ".php"),
    ],
)
def test_file_based_drivers_use_a_file_locator(factory, driver_class, suffix):
    mappings_pass = factory(MAPPINGS, ["acme_blog.manager"])

    driver = mappings_pass.driver
    assert driver.class_name == driver_class
    locator = driver.arguments[0]
    assert locator.class_name == FILE_LOCATOR_CLASS
    assert locator.arguments == [MAPPINGS, suffix]
    assert mappings_pass.namespaces == ["acme.blog.model"]
    assert mappings_pass.manager_parameters == ["acme_blog.manager", DEFAULT_MANAGER_PARAMETER]


def test_annotation_driver_reads_annotations_from_directories():
    mappings_pass = create_annotation_mapping_driver(
        ["acme.blog.model"], ["/srv/acme/blog/model"], ["acme_blog.manager"]
    )

    assert mappings_pass.driver == Definition(
        ODM_CLASSES["odm.metadata.annotation"],
        [Reference("annotation_reader"), ["/srv/acme/blog/model"]],
    )
    assert mappings_pass.namespaces == ["acme.blog.model"]
    assert mappings_pass.manager_parameters == ["acme_blog.manager", DEFAULT_MANAGER_PARAMETER]


def test_static_driver_has_no_locator():
    mappings_pass = create_static_mapping_driver(["acme.blog.model"], ["/srv/acme/blog/model"])

    assert mappings_pass.driver == Definition(
        ODM_CLASSES["odm.metadata.staticphp"], [["/srv/acme/blog/model"]]
    )
    assert mappings_pass.manager_parameters == [DEFAULT_MANAGER_PARAMETER]


def test_generic_factory_matches_specific_factories():
    assert (
        create_mapping_driver(Yaml(), MAPPINGS, ["p"]).driver
        == create_yaml_mapping_driver(MAPPINGS, ["p"]).driver
    )


@pytest.mark.parametrize("mapping_format", [Xml(), Yaml(), PlainClass()])
def test_file_formats_carry_their_suffix(mapping_format):
    locator = driver_definition(mapping_format, MAPPINGS).arguments[0]
    assert locator.arguments[1] == mapping_format.suffix


def test_driver_definition_rejects_unknown_format():
    with pytest.raises(TypeError):
        driver_definition(object(), {})


def test_manager_parameters_are_not_shared_between_passes():
    parameters = ["acme_blog.manager"]
    create_xml_mapping_driver(MAPPINGS, parameters)

    assert parameters == ["acme_blog.manager"]


def test_process_adds_driver_to_default_chain(container):
    mappings_pass = create_xml_mapping_driver(MAPPINGS, ["acme_blog.manager"])
    mappings_pass.process(container)

    chain = container.get_definition("doctrine_couchdb.odm.default_metadata_driver")
    assert chain.method_calls == [MethodCall("addDriver", (mappings_pass.driver, "acme.blog.model"))]
    assert container.get_definition("doctrine_couchdb.odm.default_configuration").method_calls == []


def test_process_uses_first_set_manager_parameter(container):
    container.set_parameter("acme_blog.manager", "blog")
    create_yaml_mapping_driver(MAPPINGS, ["unset.parameter", "acme_blog.manager"]).process(container)

    assert container.get_definition("doctrine_couchdb.odm.blog_metadata_driver").has_method_call("addDriver")
    assert not container.get_definition("doctrine_couchdb.odm.default_metadata_driver").method_calls


def test_empty_manager_parameter_falls_through(container):
    container.set_parameter("acme_blog.manager", None)
    create_yaml_mapping_driver(MAPPINGS, ["acme_blog.manager"]).process(container)

    assert container.get_definition("doctrine_couchdb.odm.default_metadata_driver").has_method_call("addDriver")


def test_process_registers_aliases(container):
    create_annotation_mapping_driver(
        ["acme.blog.model", "acme.blog.extra"],
        ["/srv/a"],
        [],
        alias_map={"Blog": "acme.blog.model"},
    ).process(container)

    chain = container.get_definition("doctrine_couchdb.odm.default_metadata_driver")
    assert [call.arguments[1] for call in chain.method_calls] == ["acme.blog.model", "acme.blog.extra"]
    configuration = container.get_definition("doctrine_couchdb.odm.default_configuration")
    assert configuration.method_calls == [
        MethodCall("addDocumentNamespace", ("Blog", "acme.blog.model"))
    ]


def test_disabled_pass_is_a_no_op(container):
    create_xml_mapping_driver(MAPPINGS, [], enabled_parameter="acme_blog.backend_couchdb").process(container)

    assert container.get_definition("doctrine_couchdb.odm.default_metadata_driver").method_calls == []


def test_enabled_pass_runs_when_parameter_exists(container):
    container.set_parameter("acme_blog.backend_couchdb", True)
    create_xml_mapping_driver(MAPPINGS, [], enabled_parameter="acme_blog.backend_couchdb").process(container)

    assert container.get_definition("doctrine_couchdb.odm.default_metadata_driver").has_method_call("addDriver")


def test_missing_manager_name_raises():
    mappings_pass = MappingsPass(Reference("driver"), ["acme"], ["acme_blog.manager"])

    with pytest.raises(ParameterNotFoundError, match="Could not find the manager name parameter"):
        mappings_pass.process(ContainerBuilder())


def test_static_and_annotation_formats_store_directories():
    assert StaticDeclaration(("/a",)).directories == ("/a",)
    assert Annotation(("/a",), reader="my_reader").reader == "my_reader"
