"""Tests for the codebase miners and the CodebaseContext initialization gate."""

import pytest

from query_engine.miners import (
    CodebaseContext,
    EventMiner,
    LinkMiner,
    ModelMiner,
    RouteMiner,
    normalize_entity_name,
    parse_link_file,
    parse_model_file,
    parse_route_file,
    parse_validator_file,
)

LINK_SOURCE = """
export default defineLink(
  RawMaterialModule.linkable.rawMaterials,
  InventoryModule.linkable.inventoryItem
)
"""


DESIGN_MODEL = """
import { model } from "@medusajs/framework/utils"
import DesignSpecification from "./design-specification"

const Design = model.define("design", {
  id: model.id().primaryKey(),
  name: model.text().searchable(),
  description: model.text().nullable(),
  priority: model.number().default(1),
  status: model.enum(["Conceptual", "In_Development", "Approved"]).default("Conceptual"),
  specifications: model.hasMany(() => DesignSpecification, { mappedBy: "design" }),
  partner: model.belongsTo(() => Partner),
})

export default Design
"""

PRODUCTION_RUN_MODEL = """
const ProductionRun = model.define("production_run", {
  id: model.id().primaryKey(),
  status: model.enum(["pending", "in_progress", "completed"]),
  notes: model.text().searchable().nullable(),
})
"""

ROUTE_SOURCE = """
import { sendDesignToPartnerWorkflow } from "../../../../../workflows/designs/send-to-partner"

export const POST = async (req, res) => {
  const { result } = await sendDesignToPartnerWorkflow(req.scope).run({ input: {} })
  res.json(result)
}
"""

LIST_ROUTE_SOURCE = """
export const GET = async (
  req: MedusaRequest & { query: { offset?: number; status?: "active" | "inactive"; q?: string } },
  res: MedusaResponse
) => {
  res.json({})
}
"""

VALIDATOR_SOURCE = """
import { z } from "zod"

export const CreateDesignSchema = z.object({
  name: z.string(),
  description: z.string().optional(),
  status: z.enum(["Conceptual", "Approved"]).optional(),
  priority: z.number(),
})
"""

SUBSCRIBER_SOURCE = """
import { notifyPartnerWorkflow } from "../workflows/notify-partner"

export default async function designApproved({ event, container }) {
  const query = container.resolve("query")
  const { data } = await query.graph({
    entity: "design",
    fields: ["id", "name", "partner.*"],
  })
  await notifyPartnerWorkflow(container).run({ input: { id: event.data.id } })
}

export const config = {
  event: "design.approved",
}
"""

WORKFLOW_SOURCE = """
type NotifyPartnerInput = {
  id: string
  message?: string
}

const createNotificationStep = createStep("create-notification", async (input, { container }) => {
  const service = container.resolve("notification")
  await service.createNotifications({ to: input.id })
})

export const notifyPartnerWorkflow = createWorkflow("notify-partner", (input) => {
  productionService.updateProductionRuns({ id: input.id })
  eventBus.emit("partner.notified", { id: input.id })
})
"""


# ============================================================
# Model miner
# ============================================================

def test_parse_model_file_extracts_fields_enums_and_relations():
    """Fields, searchable flags, enum values and relations come out of model.define()."""
    models = parse_model_file(DESIGN_MODEL, "design/models/design.ts")
    assert len(models) == 1
    model = models[0]

    assert model.model_name == "Design"
    assert model.table_name == "design"
    assert model.searchable_fields == ["name"]
    assert model.enum_fields == {"status": ["Conceptual", "In_Development", "Approved"]}
    assert "description" in model.field_names

    relations = {r.name: r for r in model.relations}
    assert relations["specifications"].type == "hasMany"
    assert relations["specifications"].mapped_by == "design"
    # mappedBy of the previous relation must not leak into the next one
    assert relations["partner"].mapped_by is None


def test_model_miner_lookup_accepts_naming_variants():
    miner = ModelMiner()
    miner.load_sources({"production/models/production-run.ts": PRODUCTION_RUN_MODEL})

    assert miner.get("production_run") is miner.get("productionrun")
    assert miner.get("ProductionRun") is not None
    assert miner.get("nothing_here") is None
    assert len(miner) == 1

    doc = miner.doc_for("production_run")
    assert "Searchable Fields" in doc
    assert "notes" in doc
    assert "**Query Patterns**" in doc


def test_model_miner_skips_broken_files():
    miner = ModelMiner()
    miner.load_sources({
        "broken/models/broken.ts": 'model.define("broken", { id: model.id(',
        "design/models/design.ts": DESIGN_MODEL,
    })
    assert miner.get("design") is not None
    assert miner.get("broken") is None


# ============================================================
# Link miner
# ============================================================

def test_parse_link_file():
    link = parse_link_file(LINK_SOURCE, "raw-material-inventory.ts")
    assert link is not None
    assert link.source_module == "RawMaterialModule"
    assert link.source_entity == "raw_material"
    assert link.target_entity == "inventory_item"
    assert link.is_list is False
    assert link.other_side("raw_material") == ("inventory_item", "inventoryItem")


def test_parse_link_file_with_list_and_extra_columns():
    source = """
export default defineLink(
  { linkable: DesignModule.linkable.design, isList: true, field: "designs" },
  PartnerModule.linkable.partner,
  { database: { extraColumns: { role: { type: "text" }, since: { type: "datetime" } } } }
)
"""
    link = parse_link_file(source, "design-partner.ts")
    assert link.is_list is True
    assert link.field_name == "designs"
    assert link.extra_columns == ["role", "since"]
    assert link.entry_point == "design_partner"


def test_normalize_entity_name():
    assert normalize_entity_name("inventoryItem") == "inventory_item"
    assert normalize_entity_name("rawMaterials") == "raw_material"


def test_linked_relation_names_cover_both_sides(link_miner):
    names = link_miner.linked_relation_names("raw_material")
    assert {"inventory_item", "inventory_items", "inventoryItem"} <= names

    reverse = link_miner.linked_relation_names("inventory_item")
    assert "raw_material" in reverse

    assert link_miner.has_link_between("raw_material", "inventory_item")
    assert link_miner.linked_relation_names("order") == set()
    assert "graph traversal" in link_miner.docs_for(["raw_material"])


def test_link_miner_ignores_files_without_define_link():
    miner = LinkMiner()
    miner.load_sources({"readme.ts": "export const x = 1"})
    assert len(miner) == 0


# ============================================================
# Route miner
# ============================================================

def test_parse_route_file_with_workflow():
    route = parse_route_file(ROUTE_SOURCE, "designs/[id]/send-to-partner/route.ts")
    assert route.path == "/admin/designs/[id]/send-to-partner"
    assert route.methods == ["POST"]
    assert route.module == "designs"
    assert route.action == "send_to_partner"
    assert route.params == ["id"]
    assert route.workflow_name == "sendDesignToPartnerWorkflow"


def test_parse_route_file_query_params():
    route = parse_route_file(LIST_ROUTE_SOURCE, "partners/route.ts")
    params = {p.name: p for p in route.query_params}
    assert params["offset"].type == "number"
    assert params["offset"].required is False
    assert params["status"].type == "enum"
    assert params["status"].enum_values == ["active", "inactive"]


def test_parse_route_file_without_handlers():
    assert parse_route_file("export const helper = 1", "designs/route.ts") is None


def test_parse_validator_file():
    validators = parse_validator_file(VALIDATOR_SOURCE)
    assert len(validators) == 1
    validator = validators[0]
    assert validator.name == "CreateDesignSchema"
    assert validator.required_fields == ["name", "priority"]
    assert "description" in validator.optional_fields
    status = next(f for f in validator.fields if f.name == "status")
    assert status.enum_values == ["Conceptual", "Approved"]


def test_route_miner_docs_and_entity_modules():
    miner = RouteMiner()
    miner.load_sources(
        {"designs/[id]/send-to-partner/route.ts": ROUTE_SOURCE},
        {"designs/validators.ts": VALIDATOR_SOURCE},
    )
    assert miner.entity_to_module("design") == "designs"
    assert miner.routes_for_workflow("sendDesignToPartnerWorkflow")[0].module == "designs"

    doc = miner.docs_for(["designs"])
    assert "POST /admin/designs/[id]/send-to-partner" in doc
    assert "Triggers workflow: sendDesignToPartnerWorkflow" in doc
    assert "CreateDesignSchema" in doc


# ============================================================
# Event miner
# ============================================================

def test_event_chain_follows_workflows():
    miner = EventMiner()
    miner.load_sources(
        {"design-approved.ts": SUBSCRIBER_SOURCE},
        {"notify-partner.ts": WORKFLOW_SOURCE},
    )

    subscriber = miner.subscriber("design.approved")
    assert subscriber.triggered_workflows == ["notifyPartnerWorkflow"]
    assert subscriber.query_patterns[0].entity == "design"
    assert subscriber.query_patterns[0].fields == ["id", "name", "partner.*"]

    workflow = miner.workflow("notifyPartnerWorkflow")
    assert workflow.input_fields == ["id", "message"]
    assert workflow.steps == ["create-notification"]

    chain = miner.chain_for("design.approved")
    accessed = {(a.entity, a.operation) for a in chain.affected_entities}
    assert ("design", "read") in accessed
    assert ("productionrun", "update") in accessed
    assert chain.cascading_events == ["partner.notified"]

    context = miner.context_for(["design"])
    assert "### Event: design.approved" in context
    assert miner.context_for(["customer"]) == ""


# ============================================================
# Codebase context
# ============================================================

def _write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.mark.asyncio
async def test_codebase_context_mines_once(tmp_path):
    _write(tmp_path / "src/modules/design/models/design.ts", DESIGN_MODEL)
    _write(tmp_path / "src/links/raw-material-inventory.ts", LINK_SOURCE)
    _write(tmp_path / "src/api/admin/designs/[id]/send-to-partner/route.ts", ROUTE_SOURCE)
    _write(tmp_path / "src/subscribers/design-approved.ts", SUBSCRIBER_SOURCE)
    _write(tmp_path / "src/workflows/notify-partner.ts", WORKFLOW_SOURCE)

    context = CodebaseContext(root=tmp_path)
    await context.ensure_initialized()

    stats = context.stats()
    assert stats["initialized"] is True
    assert stats["models"] == 1
    assert stats["links"] == 1
    assert stats["routes"] == 1
    assert stats["event_subscribers"] == 1

    # A second call must not mine again
    _write(tmp_path / "src/links/another.ts", LINK_SOURCE)
    await context.ensure_initialized()
    assert context.stats()["links"] == 1

    text = await context.build_context(["design"])
    assert "## Custom Module Models" in text
    assert "## API Endpoints (from codebase)" in text
    assert "## Event Chains" in text


@pytest.mark.asyncio
async def test_codebase_context_with_missing_directories(tmp_path):
    context = CodebaseContext(root=tmp_path / "does-not-exist")
    await context.ensure_initialized()
    assert context.is_initialized
    assert context.stats()["models"] == 0
    assert await context.build_context(["design"]) == ""

    context.reset()
    assert not context.is_initialized
