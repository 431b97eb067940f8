"""Sales pipelines and opportunities."""

from datetime import date

import pytest

from aris.db.models import OpportunityActivity
from aris.services import pipeline_service

STAGES = [
    {"name": "Lead", "probability": 10},
    {"name": "Proposal", "probability": 50},
    {"name": "Won", "probability": 100, "is_closed_won": True},
    {"name": "Lost", "probability": 0, "is_closed_lost": True},
]


@pytest.fixture
def pipeline(db, test_org, test_user):
    return pipeline_service.create_pipeline(db, test_org.id, test_user.id, "Sales", STAGES)


def _stage(pipeline, name):
    return next(s for s in pipeline.stages if s.name == name)


def test_create_pipeline_orders_stages(pipeline):
    assert [(s.name, s.sort_order) for s in pipeline.stages] == [
        ("Lead", 1), ("Proposal", 2), ("Won", 3), ("Lost", 4),
    ]
    assert pipeline.color == "#3B82F6"
    assert _stage(pipeline, "Won").is_closed_won is True


def test_stage_probability_is_validated(db, test_org):
    with pytest.raises(pipeline_service.PipelineValidationError):
        pipeline_service.create_pipeline(db, test_org.id, None, "Bad", [{"name": "X", "probability": 120}])


def test_weighted_value():
    assert pipeline_service.weighted(1000, 25) == 250
    assert pipeline_service.weighted(None, 50) == 0


def test_opportunity_takes_stage_probability(db, test_org, test_user, pipeline):
    opp = pipeline_service.create_opportunity(
        db, test_org.id, test_user.id, pipeline.id, _stage(pipeline, "Proposal").id, "Big deal", value=1000
    )

    assert opp.probability == 50
    detail = pipeline_service.get_opportunity_with_details(db, test_org.id, opp.id)
    assert detail["weighted_value"] == 500
    assert [a.description for a in detail["activities"]] == ["Opportunity created"]


def test_create_opportunity_rejects_foreign_stage(db, test_org, test_user, pipeline):
    other = pipeline_service.create_pipeline(db, test_org.id, test_user.id, "Other", [{"name": "Only"}])

    with pytest.raises(pipeline_service.PipelineValidationError):
        pipeline_service.create_opportunity(
            db, test_org.id, test_user.id, pipeline.id, other.stages[0].id, "Deal"
        )


def test_move_to_closed_won_stage_closes_deal(db, test_org, test_user, pipeline):
    opp = pipeline_service.create_opportunity(
        db, test_org.id, test_user.id, pipeline.id, _stage(pipeline, "Lead").id, "Deal", value=200
    )

    moved = pipeline_service.move_opportunity_to_stage(
        db, opp, _stage(pipeline, "Won").id, test_user.id, note="Signed"
    )

    assert moved.status == "won"
    assert moved.probability == 100
    assert moved.actual_close_date == date.today()
    activity = db.query(OpportunityActivity).filter(
        OpportunityActivity.activity_type == "stage_changed"
    ).one()
    assert activity.description == "Moved from Lead to Won: Signed"

    reopened = pipeline_service.move_opportunity_to_stage(
        db, moved, _stage(pipeline, "Proposal").id, test_user.id
    )
    assert reopened.status == "open"
    assert reopened.actual_close_date is None


def test_update_logs_value_and_status_changes(db, test_org, test_user, pipeline):
    opp = pipeline_service.create_opportunity(
        db, test_org.id, test_user.id, pipeline.id, _stage(pipeline, "Lead").id, "Deal", value=100
    )

    pipeline_service.update_opportunity(db, opp, test_user.id, value=300, status="lost")

    types = {a.activity_type for a in db.query(OpportunityActivity).all()}
    assert {"value_changed", "status_changed"} <= types
    assert opp.actual_close_date == date.today()


def test_board_and_summary_totals(db, test_org, test_user, pipeline):
    lead = _stage(pipeline, "Lead")
    for value in (100, 300):
        pipeline_service.create_opportunity(db, test_org.id, test_user.id, pipeline.id, lead.id, "Deal", value=value)
    won = pipeline_service.create_opportunity(
        db, test_org.id, test_user.id, pipeline.id, lead.id, "Closed", value=1000
    )
    pipeline_service.move_opportunity_to_stage(db, won, _stage(pipeline, "Won").id, test_user.id)

    board = pipeline_service.get_pipeline_with_opportunities(db, test_org.id, pipeline.id)
    lead_column = board["stages"][0]
    assert lead_column["opportunities_count"] == 2
    assert lead_column["total_value"] == 400
    assert lead_column["weighted_value"] == 40

    summary = pipeline_service.get_pipeline_summary(db, test_org.id, pipeline.id)
    assert summary["total_opportunities"] == 3
    assert summary["won_value"] == 1000
    assert summary["weighted_value"] == 40
    assert summary["win_rate"] == 100.0


def test_analytics_stage_conversion(db, test_org, test_user, pipeline):
    lead = _stage(pipeline, "Lead")
    pipeline_service.create_opportunity(db, test_org.id, test_user.id, pipeline.id, lead.id, "A", value=100)
    b = pipeline_service.create_opportunity(db, test_org.id, test_user.id, pipeline.id, lead.id, "B", value=500)
    pipeline_service.move_opportunity_to_stage(db, b, _stage(pipeline, "Proposal").id, test_user.id)

    analytics = pipeline_service.get_pipeline_analytics(db, test_org.id, pipeline.id)

    assert analytics["total_opportunities"] == 2
    rates = {r["stage_name"]: r["conversion_rate"] for r in analytics["stage_conversion_rates"]}
    assert rates["Lead"] == 100.0
    assert rates["Proposal"] == 50.0
    assert analytics["average_deal_size"] == 0.0


def test_bulk_update_counts_failures(db, test_org, test_user, pipeline):
    opp = pipeline_service.create_opportunity(
        db, test_org.id, test_user.id, pipeline.id, _stage(pipeline, "Lead").id, "Deal"
    )
    missing = pipeline_service.create_pipeline(db, test_org.id, None, "Tmp", [{"name": "S"}]).id

    result = pipeline_service.bulk_update_opportunities(
        db, test_org.id, [opp.id, missing], test_user.id, {"priority": "high"}
    )

    assert result == {"updated": 1, "failed": 1}
    db.refresh(opp)
    assert opp.priority == "high"


# =============================================================================
# API
# =============================================================================


@pytest.mark.asyncio
async def test_pipeline_api_flow(authed_client):
    created = await authed_client.post(
        "/pipelines",
        json={"name": "Sales", "stages": [{"name": "New", "probability": 20}, {"name": "Won", "probability": 100, "is_closed_won": True}]},
    )
    assert created.status_code == 200
    pipeline = created.json()
    new_stage, won_stage = pipeline["stages"]

    opp = await authed_client.post(
        "/opportunities",
        json={"pipeline_id": pipeline["id"], "stage_id": new_stage["id"], "title": "Deal", "value": 50},
    )
    assert opp.status_code == 200
    assert opp.json()["probability"] == 20

    moved = await authed_client.post(
        f"/opportunities/{opp.json()['id']}/move", json={"stage_id": won_stage["id"]}
    )
    assert moved.json()["status"] == "won"

    board = await authed_client.get(f"/pipelines/{pipeline['id']}")
    assert board.status_code == 200
    assert board.json()["stages"][1]["opportunities_count"] == 1


@pytest.mark.asyncio
async def test_move_to_other_pipeline_stage_is_rejected(authed_client, db, test_org, test_user, pipeline):
    other = pipeline_service.create_pipeline(db, test_org.id, test_user.id, "Other", [{"name": "Only"}])
    opp = pipeline_service.create_opportunity(
        db, test_org.id, test_user.id, pipeline.id, _stage(pipeline, "Lead").id, "Deal"
    )

    response = await authed_client.post(
        f"/opportunities/{opp.id}/move", json={"stage_id": str(other.stages[0].id)}
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Stage does not belong to this pipeline"}


@pytest.mark.asyncio
async def test_members_cannot_create_pipelines(member_client):
    response = await member_client.post(
        "/pipelines", json={"name": "Mine", "stages": [{"name": "Only"}]}
    )

    assert response.status_code == 403
