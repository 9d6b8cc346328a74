"""
Resource discovery tests

Partial results with skipped branches, root failure as an auth error,
activation propagation and Jira pagination.

Run: cd api && pytest tests/test_discovery.py -v
"""

import os
import sys
import asyncio

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pytest

from fakes import Router, make_transport
from integrations.core.errors import AuthenticationError, NetworkError, ProxyActivationRequired, ValidationError
from integrations.core.transport import CORS_ANYWHERE_ACTIVATION_URL, ProxyProvider
from integrations.core.types import IntegrationConfig
from integrations.discovery import fetch_branch, fetch_root, gather_branches
from integrations.exporters import (
    AsanaExporter,
    ClickUpExporter,
    ExporterContext,
    JiraExporter,
    SlackExporter,
    TrelloExporter,
    ZohoSprintsExporter,
)

CLICKUP = "/api/v2"

CLICKUP_CONFIG = IntegrationConfig(clickup_token="pk_test")
JIRA_CONFIG = IntegrationConfig(
    jira_url="https://acme.atlassian.net",
    jira_email="qa@acme.test",
    jira_token="atl_token",
)


def clickup_routes(**overrides):
    routes = {
        ("GET", f"{CLICKUP}/team"): (200, {"teams": [{"id": "1", "name": "Acme"}]}),
        ("GET", f"{CLICKUP}/team/1/space"): (200, {"spaces": [{"id": "S1", "name": "Eng"}, {"id": "S2", "name": "Ops"}]}),
        ("GET", f"{CLICKUP}/space/S1/folder"): (200, {"folders": [{"id": "F1", "name": "Web"}]}),
        ("GET", f"{CLICKUP}/space/S1/list"): (200, {"lists": [{"id": "101", "name": "Inbox"}]}),
        ("GET", f"{CLICKUP}/folder/F1/list"): (200, {"lists": [{"id": "102", "name": "Bugs"}]}),
        ("GET", f"{CLICKUP}/space/S2/folder"): (500, {"err": "Internal error"}),
        ("GET", f"{CLICKUP}/space/S2/list"): (200, {"lists": [{"id": "103", "name": "Incidents"}]}),
    }
    routes.update(overrides)
    return routes


def discover(strategy, config, router, providers=None):
    ctx = ExporterContext(config=config, transport=make_transport(router, providers))
    return asyncio.run(strategy.discover(ctx))


# =============================================================================
# Branch helpers
# =============================================================================

async def _ok(value):
    return value


async def _fails(error):
    raise error


def test_fetch_branch_records_skip_reason():
    ok = asyncio.run(fetch_branch("good", _ok([1, 2])))
    skipped = asyncio.run(fetch_branch("bad", _fails(ValidationError("nope"))))

    assert ok.ok and ok.value == [1, 2]
    assert not skipped.ok
    assert skipped.label == "bad"
    assert skipped.skipped_reason == "nope"


def test_fetch_branch_propagates_activation():
    with pytest.raises(ProxyActivationRequired):
        asyncio.run(fetch_branch("x", _fails(ProxyActivationRequired("cors-anywhere", CORS_ANYWHERE_ACTIVATION_URL))))


def test_gather_branches_keeps_input_order_and_handles_empty():
    results = asyncio.run(gather_branches([("a", _ok(1)), ("b", _fails(KeyError("id"))), ("c", _ok(3))]))

    assert [r.label for r in results] == ["a", "b", "c"]
    assert [r.ok for r in results] == [True, False, True]
    assert asyncio.run(gather_branches([])) == []


def test_fetch_root_converts_failures_to_authentication_error():
    with pytest.raises(AuthenticationError) as exc_info:
        asyncio.run(fetch_root("teams", _fails(KeyError("teams")), platform="clickup"))
    assert "Could not list teams" in exc_info.value.message

    with pytest.raises(NetworkError):
        asyncio.run(fetch_root("teams", _fails(NetworkError("offline"))))


# =============================================================================
# ClickUp hierarchy
# =============================================================================

def test_clickup_partial_discovery_skips_failed_branch():
    router = Router(clickup_routes())

    report = discover(ClickUpExporter(), CLICKUP_CONFIG, router)

    found = {(r.id, r.name, r.group_path) for r in report.resources}
    assert found == {
        ("101", "Inbox", "Eng"),
        ("102", "Bugs", "Eng > Web"),
        ("103", "Incidents", "Ops"),
    }
    assert [b.label for b in report.skipped] == ["Ops folders"]
    assert "Internal error" in report.skipped[0].skipped_reason

    data = report.to_dict()
    assert data["platform"] == "clickup"
    assert {"id": "102", "name": "Bugs", "group_path": "Eng > Web"} in data["resources"]
    assert data["skipped"][0]["branch"] == "Ops folders"


def test_clickup_no_teams_is_an_empty_account():
    router = Router({("GET", f"{CLICKUP}/team"): (200, {"teams": []})})

    report = discover(ClickUpExporter(), CLICKUP_CONFIG, router)

    assert report.resources == []
    assert report.skipped == []
    assert len(router.requests) == 1


def test_clickup_root_failure_is_authentication_error():
    router = Router({("GET", f"{CLICKUP}/team"): (401, {"err": "Token invalid", "ECODE": "OAUTH_025"})})

    with pytest.raises(AuthenticationError):
        discover(ClickUpExporter(), CLICKUP_CONFIG, router)


def test_clickup_activation_on_branch_aborts_discovery():
    """A relay lock page on any branch stops the walk instead of being skipped."""
    def folder_locked(request):
        return httpx.Response(403, text="Missing required request header. See /corsdemo")

    router = Router(clickup_routes())
    router.routes[("GET", f"{CLICKUP}/space/S2/folder")] = folder_locked

    cors_anywhere = ProxyProvider(
        name="cors-anywhere",
        rewrite=lambda url: url,
        activation_marker="/corsdemo",
        activation_url=CORS_ANYWHERE_ACTIVATION_URL,
    )

    with pytest.raises(ProxyActivationRequired) as exc_info:
        discover(ClickUpExporter(), CLICKUP_CONFIG, router, providers=[cors_anywhere])
    assert exc_info.value.activation_url == CORS_ANYWHERE_ACTIVATION_URL


def test_resolve_destination_by_configured_name():
    router = Router(clickup_routes())
    config = IntegrationConfig(clickup_token="pk_test", clickup_list_name="bugs")
    ctx = ExporterContext(config=config, transport=make_transport(router))

    assert asyncio.run(ClickUpExporter().resolve_destination(ctx)) == "102"


def test_resolve_destination_with_unknown_name_fails():
    router = Router(clickup_routes())
    config = IntegrationConfig(clickup_token="pk_test", clickup_list_name="Roadmap")
    ctx = ExporterContext(config=config, transport=make_transport(router))

    with pytest.raises(ValidationError) as exc_info:
        asyncio.run(ClickUpExporter().resolve_destination(ctx))
    assert "Roadmap" in exc_info.value.message


# =============================================================================
# Jira pagination
# =============================================================================

def _project(key, category=None):
    project = {"id": key.lower(), "key": key, "name": f"{key} project"}
    if category:
        project["projectCategory"] = {"name": category}
    return project


def test_jira_discovery_pages_and_groups_by_category():
    def search(request):
        start_at = int(request.url.params["startAt"])
        if start_at == 0:
            return httpx.Response(200, json={
                "startAt": 0, "isLast": False,
                "values": [_project("WEB", "Product"), _project("API")],
            })
        return httpx.Response(200, json={
            "startAt": start_at, "isLast": True,
            "values": [_project("OPS", "Internal")],
        })

    router = Router({("GET", "/rest/api/3/project/search"): search})

    report = discover(JiraExporter(), JIRA_CONFIG, router)

    assert [(r.id, r.group_path) for r in report.resources] == [
        ("WEB", "Product"),
        ("API", "Projects"),
        ("OPS", "Internal"),
    ]
    assert [r.url.params["startAt"] for r in router.requests] == ["0", "2"]
    assert router.requests[0].headers["Authorization"].startswith("Basic ")


def test_jira_failed_page_is_skipped_after_first():
    def search(request):
        if request.url.params["startAt"] == "0":
            return httpx.Response(200, json={"startAt": 0, "isLast": False, "values": [_project("WEB")]})
        return httpx.Response(503, text="Service Unavailable")

    report = discover(JiraExporter(), JIRA_CONFIG, Router({("GET", "/rest/api/3/project/search"): search}))

    assert [r.id for r in report.resources] == ["WEB"]
    assert len(report.skipped) == 1


def test_platform_without_hierarchy_rejects_discovery():
    ctx = ExporterContext(config=IntegrationConfig(slack_token="xoxb-1"), transport=make_transport(Router()))

    with pytest.raises(ValidationError):
        asyncio.run(SlackExporter().discover(ctx))


def test_gather_branches_lets_siblings_finish_before_activation():
    finished = []

    async def slow_sibling():
        await asyncio.sleep(0.01)
        finished.append("slow")
        return "done"

    with pytest.raises(ProxyActivationRequired):
        asyncio.run(gather_branches([
            ("locked", _fails(ProxyActivationRequired("cors-anywhere", CORS_ANYWHERE_ACTIVATION_URL))),
            ("slow", slow_sibling()),
        ]))

    assert finished == ["slow"]


def test_clickup_malformed_entries_are_ignored():
    router = Router({
        ("GET", f"{CLICKUP}/team"): (200, {"teams": [{"name": "No id"}, {"id": "1"}]}),
        ("GET", f"{CLICKUP}/team/1/space"): (200, {"spaces": [{"id": "S1"}, {"name": "Broken"}]}),
        ("GET", f"{CLICKUP}/space/S1/folder"): (200, {"folders": [{"name": "No id"}]}),
        ("GET", f"{CLICKUP}/space/S1/list"): (200, {"lists": [{"id": "101"}, {"name": "No id"}, "junk"]}),
    })

    report = discover(ClickUpExporter(), CLICKUP_CONFIG, router)

    # Unnamed entries are labeled by id
    assert [(r.id, r.name, r.group_path) for r in report.resources] == [("101", "101", "S1")]
    assert report.skipped == []


# =============================================================================
# Asana / Trello / Zoho Sprints hierarchies
# =============================================================================

ASANA = "/api/1.0"


def test_asana_discovery_skips_forbidden_workspace():
    router = Router({
        ("GET", f"{ASANA}/workspaces"): (200, {"data": [
            {"gid": "W1", "name": "Acme"},
            {"gid": "W2", "name": "Partner"},
            {"name": "No gid"},
        ]}),
        ("GET", f"{ASANA}/workspaces/W1/projects"): (200, {"data": [
            {"gid": "P1", "name": "Mobile"},
            {"name": "Draft without gid"},
        ]}),
        ("GET", f"{ASANA}/workspaces/W2/projects"): (403, {"errors": [{"message": "Not a member"}]}),
    })

    report = discover(AsanaExporter(), IntegrationConfig(asana_token="asana_pat"), router)

    assert [(r.id, r.name, r.group_path) for r in report.resources] == [("P1", "Mobile", "Acme")]
    assert [b.label for b in report.skipped] == ["Partner"]
    assert "Not a member" in report.skipped[0].skipped_reason
    assert router.calls("GET", f"{ASANA}/workspaces/W1/projects")[0].url.params["archived"] == "false"


def test_trello_discovery_labels_unnamed_board_by_id():
    router = Router({
        ("GET", "/1/members/me/boards"): (200, [{"id": "b1", "name": "Product"}, {"id": "b2"}]),
        ("GET", "/1/boards/b1/lists"): (200, [{"id": "l1", "name": "To do"}, {"id": "l2", "name": "Bugs"}]),
        ("GET", "/1/boards/b2/lists"): (500, "Internal Server Error"),
    })
    config = IntegrationConfig(trello_api_key="key", trello_token="tok")

    report = discover(TrelloExporter(), config, router)

    assert [(r.id, r.name, r.group_path) for r in report.resources] == [
        ("l1", "To do", "Product"),
        ("l2", "Bugs", "Product"),
    ]
    assert [b.label for b in report.skipped] == ["b2"]
    assert all(r.url.params["token"] == "tok" for r in router.requests)


def test_zoho_discovery_walks_teams_to_projects():
    router = Router({
        ("GET", "/resourceapi/v1/teams"): (200, {"teams": [{"id": "55", "name": "Acme"}, {"id": "56"}]}),
        ("GET", "/resourceapi/v1/teams/55/projects"): (200, {"projects": [{"id": "777", "name": "Checkout"}]}),
        ("GET", "/resourceapi/v1/teams/56/projects"): (200, []),
    })
    config = IntegrationConfig(zoho_sprints_token="zoho_token", zoho_sprints_team_id="55")

    report = discover(ZohoSprintsExporter(), config, router)

    assert [(r.id, r.name, r.group_path) for r in report.resources] == [("777", "Checkout", "Acme")]
    assert report.skipped == []
    assert {r.url.host for r in router.requests} == {"sprintsapi.zoho.com"}
