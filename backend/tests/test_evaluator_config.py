import pytest

from perfeval.models import EvaluatorType
from perfeval.services.evaluator_config import EvaluatorAutoConfigurator
from perfeval.services.identity import IdentityResolver
from perfeval.services.stores import LineStore


async def _primary_evaluators(db, period_id, employee_id):
    lines = LineStore(db)
    line = await lines.get_line(EvaluatorType.primary, order=1)
    if line is None:
        return []
    return [m.evaluator_id for m in await lines.find_employee_mappings(period_id, employee_id, line.id)]


async def _secondary_evaluators(db, period_id, employee_id, wbs_item_id):
    return [m.evaluator_id for m in await LineStore(db).find_wbs_mappings(period_id, employee_id, wbs_item_id)]


@pytest.mark.asyncio
async def test_resolver_maps_external_ids_to_internal_employees(db, seed):
    manager = await seed.employee("Mina Park", external_id="HR-MGR")
    employee = await seed.employee("Dana Cho", manager=manager)
    resolver = IdentityResolver(db)

    assert await resolver.resolve_internal_id("HR-MGR") == manager.id
    assert await resolver.resolve_internal_id(" HR-MGR ") == manager.id
    assert await resolver.resolve_internal_id("HR-UNKNOWN") is None
    assert await resolver.resolve_internal_id(None) is None
    assert await resolver.manager_of(employee) == manager.id
    assert await resolver.manager_of(manager) is None


@pytest.mark.asyncio
async def test_no_secondary_when_project_manager_is_the_employees_manager(db, seed):
    manager = await seed.employee("Mina Park")
    employee = await seed.employee("Dana Cho", manager=manager)
    project = await seed.project(manager=manager)
    period = await seed.period()
    item = await seed.wbs_item(project, "Design")

    config = await EvaluatorAutoConfigurator(db).configure_for_assignment(
        employee.id, item.id, project.id, period.id, "admin"
    )

    assert config.primary_evaluator_id == manager.id
    assert config.secondary_evaluator_id is None
    assert config.skipped == ["secondary_same_as_manager"]
    assert await _primary_evaluators(db, period.id, employee.id) == [manager.id]
    assert await _secondary_evaluators(db, period.id, employee.id, item.id) == []


@pytest.mark.asyncio
async def test_pre_resolved_project_manager_is_compared_on_internal_ids(db, seed):
    manager = await seed.employee("Mina Park")
    employee = await seed.employee("Dana Cho", manager=manager)
    project = await seed.project(manager=manager, resolved=True)
    period = await seed.period()
    item = await seed.wbs_item(project, "Design")

    config = await EvaluatorAutoConfigurator(db).configure_for_assignment(
        employee.id, item.id, project.id, period.id, "admin"
    )

    assert "secondary_same_as_manager" in config.skipped
    assert await _secondary_evaluators(db, period.id, employee.id, item.id) == []


@pytest.mark.asyncio
async def test_primary_evaluator_is_sticky(db, seed):
    old_manager = await seed.employee("Mina Park")
    new_manager = await seed.employee("Hana Yoon")
    employee = await seed.employee("Dana Cho", manager=old_manager)
    pm = await seed.employee("Joon Lee")
    project = await seed.project(manager=pm)
    period = await seed.period()
    first = await seed.wbs_item(project, "Design")
    second = await seed.wbs_item(project, "Build")
    configurator = EvaluatorAutoConfigurator(db)
    await configurator.configure_for_assignment(employee.id, first.id, project.id, period.id, "admin")
    await db.commit()

    employee.manager_id = new_manager.external_id
    await db.commit()
    config = await EvaluatorAutoConfigurator(db).configure_for_assignment(
        employee.id, second.id, project.id, period.id, "admin"
    )

    assert config.primary_evaluator_id == old_manager.id
    assert config.primary_created is False
    assert await _primary_evaluators(db, period.id, employee.id) == [old_manager.id]
    assert await _secondary_evaluators(db, period.id, employee.id, second.id) == [pm.id]


@pytest.mark.asyncio
async def test_missing_managers_are_skipped_without_errors(db, seed):
    employee = await seed.employee("Dana Cho")
    project = await seed.project()
    period = await seed.period()
    item = await seed.wbs_item(project, "Design")
    configurator = EvaluatorAutoConfigurator(db)

    config = await configurator.configure_for_assignment(employee.id, item.id, project.id, period.id, "admin")
    assert config.skipped == ["no_primary_evaluator", "no_secondary_evaluator"]
    assert await _primary_evaluators(db, period.id, employee.id) == []

    missing = await configurator.configure_for_assignment(9999, item.id, project.id, period.id, "admin")
    assert missing.skipped == ["employee_not_found"]
    missing = await configurator.configure_for_assignment(employee.id, item.id, 9999, period.id, "admin")
    assert missing.skipped == ["project_not_found"]


@pytest.mark.asyncio
async def test_unresolvable_external_manager_is_never_persisted(db, seed):
    employee = await seed.employee("Dana Cho")
    employee.manager_id = "HR-LEFT-COMPANY"
    await db.commit()
    pm = await seed.employee("Joon Lee")
    project = await seed.project(manager=pm)
    period = await seed.period()
    item = await seed.wbs_item(project, "Design")

    config = await EvaluatorAutoConfigurator(db).configure_for_assignment(
        employee.id, item.id, project.id, period.id, "admin"
    )

    assert config.primary_evaluator_id is None
    assert "no_primary_evaluator" in config.skipped
    assert config.secondary_evaluator_id == pm.id


@pytest.mark.asyncio
async def test_secondary_mapping_is_repointed_when_project_manager_changes(db, seed):
    manager = await seed.employee("Mina Park")
    employee = await seed.employee("Dana Cho", manager=manager)
    old_pm = await seed.employee("Joon Lee")
    new_pm = await seed.employee("Yuri Han")
    project = await seed.project(manager=old_pm)
    period = await seed.period()
    item = await seed.wbs_item(project, "Design")
    await EvaluatorAutoConfigurator(db).configure_for_assignment(employee.id, item.id, project.id, period.id, "admin")
    await db.commit()

    project.manager_id = new_pm.external_id
    await db.commit()
    config = await EvaluatorAutoConfigurator(db).configure_for_assignment(
        employee.id, item.id, project.id, period.id, "admin"
    )

    assert config.secondary_created is False
    assert await _secondary_evaluators(db, period.id, employee.id, item.id) == [new_pm.id]


@pytest.mark.asyncio
async def test_ensure_wbs_evaluation_line_creates_templates_once(db, seed):
    employee = await seed.employee("Dana Cho")
    configurator = EvaluatorAutoConfigurator(db)

    first = await configurator.ensure_wbs_evaluation_line(employee.id, 1, 1, "admin")
    second = await configurator.ensure_wbs_evaluation_line(employee.id, 1, 1, "admin")

    assert first == {"created_lines": 2, "created_mappings": 0}
    assert second == {"created_lines": 0, "created_mappings": 0}
