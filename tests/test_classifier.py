"""Tests for the entity classifier."""

from models import AccessMethod, EntityCategory, EntityDescriptor, Operation, PlanStep


def test_core_entity_uses_http_api(classifier):
    result = classifier.classify("order")
    assert result.is_core is True
    assert result.access_method == AccessMethod.HTTP_API
    assert result.valid_relations == ["items", "customer", "shipping_address", "billing_address"]
    assert result.category == EntityCategory.PRE_REGISTERED


def test_custom_entity_uses_service(classifier):
    result = classifier.classify("Production Run")
    assert result.entity_name == "production_run"
    assert result.is_core is False
    assert result.access_method == AccessMethod.IN_PROCESS_SERVICE


def test_linked_relation_switches_to_graph_traversal(classifier):
    """Asking for data across a module link can only be served by graph traversal."""
    result = classifier.classify("raw_material", ["inventory_item"])
    assert result.access_method == AccessMethod.GRAPH_TRAVERSAL
    assert result.is_core is False
    assert result.valid_relations[0] == "material_type"
    assert "inventory_item" in result.valid_relations

    # Plain relations keep the normal access method
    assert classifier.classify("raw_material", ["material_type"]).access_method == AccessMethod.IN_PROCESS_SERVICE


def test_unknown_entity(classifier):
    result = classifier.classify("spaceship")
    assert result.category == EntityCategory.UNKNOWN
    assert result.valid_relations == []
    assert result.access_method == AccessMethod.IN_PROCESS_SERVICE


def test_remembered_descriptors_take_precedence(classifier):
    widget = EntityDescriptor(
        name="widget",
        category=EntityCategory.DISCOVERED,
        access_method=AccessMethod.IN_PROCESS_SERVICE,
        relations=["parts"],
        source="mined",
    )
    classifier.remember({"widget": widget})

    result = classifier.classify("widget")
    assert result.category == EntityCategory.DISCOVERED
    assert result.valid_relations == ["parts"]

    # An unknown runtime descriptor never hides the registry entry
    classifier.remember({"order": EntityDescriptor(name="order", category=EntityCategory.UNKNOWN)})
    assert classifier.classify("order").is_core is True


def test_validate_relations_splits_and_dedupes(classifier):
    check = classifier.validate_relations("order", ["items", "customer", "bogus", "items", "bogus"])
    assert check.valid == ["items", "customer"]
    assert check.invalid == ["bogus"]

    assert classifier.validate_relations("raw_material", ["inventoryItem"]).valid == ["inventoryItem"]
    assert classifier.validate_relations("spaceship", ["anything"]).invalid == ["anything"]


def test_validate_relations_gates_custom_entities(classifier):
    check = classifier.validate_relations("design", ["specifications", "bogus_relation"])
    assert check.valid == ["specifications"]
    assert check.invalid == ["bogus_relation"]


def test_response_expectation(classifier):
    listing = classifier.response_expectation("order", is_core=True)
    assert listing.wrapper_key == "orders"
    assert listing.is_list is True

    single = classifier.response_expectation("order", is_core=True, operation=Operation.RETRIEVE.value)
    assert single.wrapper_key == "order"
    assert single.is_list is False

    assert classifier.response_expectation("category", is_core=True).wrapper_key == "categories"
    assert classifier.response_expectation("design", is_core=False).wrapper_key is None


def test_find_dependencies():
    from query_engine.classifier import EntityClassifier

    filters = {"customer_id": "$1.id", "status": "pending", "region_id": "$2"}
    assert EntityClassifier.find_dependencies(filters) == [1, 2]
    assert EntityClassifier.find_dependencies({"q": "$ten"}) == []


def test_describe_step(classifier):
    step = PlanStep(step=2, entity="order", filters={"customer_id": "$1.id"}, relations=["items"])
    text = classifier.describe_step(step, classifier.classify("order"))
    assert text == "Step 2: list order via http-api, filtered by customer_id, with items"
    assert classifier.summary(classifier.classify("order")) == "order [core, pre-registered, http-api, 4 relations]"
