"""
Default entity table shipped with the engine.

Custom modules are owned by the backing application and read through
their in-process services; core commerce entities are read through the
Admin HTTP API. Update this table when modules or relations change.
"""

from models import AccessMethod, EntityCategory, EntityDescriptor, ResolvableRef


def _custom(name, description, relations, keywords, filters=None, refs=None, enums=None):
    return EntityDescriptor(
        name=name,
        category=EntityCategory.PRE_REGISTERED,
        access_method=AccessMethod.IN_PROCESS_SERVICE,
        description=description,
        relations=relations,
        filters=filters or ["id", "q"],
        keywords=keywords,
        resolvable_refs=refs or {},
        enum_values=enums or {},
    )


def _core(name, description, api_path, relations, keywords, filters=None, refs=None):
    return EntityDescriptor(
        name=name,
        category=EntityCategory.PRE_REGISTERED,
        access_method=AccessMethod.HTTP_API,
        description=description,
        api_path=api_path,
        relations=relations,
        filters=filters or ["id", "q"],
        keywords=keywords,
        resolvable_refs=refs or {},
    )


DEFAULT_ENTITIES = [
    # ============================================================
    # CUSTOM MODULES
    # ============================================================
    _custom(
        "design",
        "Product designs with specifications, colors and size sets, moving from concept to commerce-ready.",
        ["specifications", "colors", "size_sets"],
        ["design", "product design", "specification", "moodboard", "size set"],
        filters=["id", "q", "name", "status", "design_type", "priority"],
        enums={"status": ["Conceptual", "In_Development", "Technical_Review", "Sample_Production",
                          "Revision", "Approved", "Rejected", "On_Hold", "Commerce_Ready"]},
    ),
    _custom(
        "person",
        "Contacts and people associated with the business: suppliers, partners and customer contacts.",
        ["addresses", "contacts", "person_types"],
        ["person", "people", "contact", "customer contact"],
        filters=["id", "q", "first_name", "last_name", "email", "state"],
    ),
    _custom(
        "partner",
        "Business partners including suppliers, manufacturers and collaborators.",
        ["admins", "stores"],
        ["partner", "supplier", "manufacturer", "vendor", "collaborator"],
        filters=["id", "q", "name", "handle", "status"],
        enums={"status": ["active", "inactive", "pending"]},
    ),
    _custom(
        "inventory_order",
        "Purchase orders for raw materials placed with suppliers.",
        ["order_lines"],
        ["inventory order", "purchase order", "supplier order", "material order"],
        filters=["id", "q", "status", "partner_id"],
        refs={
            "partner_id": ResolvableRef(entity="partner", search_by=["q", "name"]),
        },
    ),
    _custom(
        "raw_material",
        "Raw materials and fabrics used in production.",
        ["material_type"],
        ["raw material", "material", "fabric"],
        filters=["id", "q", "name", "status"],
    ),
    _custom(
        "production_run",
        "Manufacturing jobs from start to completion.",
        ["tasks"],
        ["production run", "manufacturing", "production job"],
        filters=["id", "status", "design_id", "partner_id"],
        refs={
            "design_id": ResolvableRef(entity="design", search_by=["q", "name"]),
            "partner_id": ResolvableRef(entity="partner", search_by=["q", "name"]),
        },
    ),
    _custom(
        "task",
        "Tasks and to-dos attached to workflows and production.",
        ["subtasks", "dependencies"],
        ["task", "todo", "assignment"],
        filters=["id", "q", "title", "status", "priority"],
    ),
    # ============================================================
    # CORE ENTITIES (Admin API)
    # ============================================================
    _core(
        "order",
        "Customer orders and purchases.",
        "/admin/orders",
        ["items", "customer", "shipping_address", "billing_address"],
        ["order", "purchase", "sale", "transaction"],
        filters=["id", "q", "status", "customer_id", "region_id", "sales_channel_id"],
        refs={"customer_id": ResolvableRef(entity="customer", search_by=["q", "email"])},
    ),
    _core(
        "customer",
        "Registered customers who can make purchases.",
        "/admin/customers",
        ["orders", "addresses", "groups"],
        ["customer", "buyer", "shopper"],
        filters=["id", "q", "email", "first_name", "last_name", "has_account"],
    ),
    _core(
        "product",
        "Products available for sale.",
        "/admin/products",
        ["variants", "options", "images", "categories", "collection", "tags"],
        ["product", "sku", "variant"],
        filters=["id", "q", "status", "handle", "collection_id", "category_id"],
        refs={
            "collection_id": ResolvableRef(entity="collection", search_by=["q"]),
            "category_id": ResolvableRef(entity="category", search_by=["q"]),
        },
    ),
    _core(
        "inventory_item",
        "Inventory items tracking stock levels.",
        "/admin/inventory-items",
        ["location_levels"],
        ["inventory", "stock", "inventory item"],
    ),
    _core(
        "store",
        "Store configuration: name, supported currencies, default region and sales channel.",
        "/admin/stores",
        ["supported_currencies"],
        ["store", "store settings", "currencies"],
    ),
    _core(
        "region",
        "Regions for shipping and taxes.",
        "/admin/regions",
        ["countries"],
        ["region", "country", "shipping zone"],
    ),
    _core(
        "collection",
        "Product collections for grouping products.",
        "/admin/collections",
        ["products"],
        ["collection"],
    ),
    _core(
        "category",
        "Product categories for organization.",
        "/admin/product-categories",
        ["products", "parent_category", "category_children"],
        ["category", "categories", "product category"],
    ),
    _core(
        "promotion",
        "Promotions and discounts.",
        "/admin/promotions",
        ["rules", "application_method"],
        ["promotion", "discount", "coupon"],
    ),
    _core(
        "sales_channel",
        "Sales channels for selling products.",
        "/admin/sales-channels",
        ["locations"],
        ["sales channel", "channel"],
    ),
    _core(
        "stock_location",
        "Stock locations for inventory management.",
        "/admin/stock-locations",
        ["address", "fulfillment_sets"],
        ["stock location", "warehouse"],
    ),
    _core(
        "draft_order",
        "Draft orders created by an admin before checkout.",
        "/admin/draft-orders",
        ["items", "customer", "shipping_address"],
        ["draft order", "draft"],
    ),
    _core(
        "return",
        "Returns for items being sent back.",
        "/admin/returns",
        ["order", "items"],
        ["return", "returns"],
    ),
    _core(
        "user",
        "Admin users of the store.",
        "/admin/users",
        [],
        ["admin user", "users"],
    ),
]
