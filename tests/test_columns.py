import pytest


@pytest.fixture()
def owner(signup):
    return signup("owner@example.com")


@pytest.fixture()
def project(client, owner):
    return client.post("/projects", headers=owner, json={"name": "Apollo"}).json()["project"]


@pytest.fixture()
def columns_url(project):
    return f"/projects/{project['id']}/columns"


def column_names(body):
    return [c["name"] for c in body["columns"]]


def test_list_columns(client, owner, columns_url):
    resp = client.get(columns_url, headers=owner)
    assert resp.status_code == 200
    assert column_names(resp.json()) == ["To Do", "In Progress", "In Review", "Done"]


def test_create_column_at_position(client, owner, columns_url):
    resp = client.post(columns_url, headers=owner, json={"name": "Blocked", "order": 2})
    assert resp.status_code == 201
    body = resp.json()
    assert body["column"] == {"name": "Blocked", "order": 2, "cards": []}
    assert column_names(body) == ["To Do", "Blocked", "In Progress", "In Review", "Done"]
    assert [c["order"] for c in body["columns"]] == [1, 2, 3, 4, 5]


def test_create_duplicate_column_is_conflict(client, owner, columns_url):
    before = client.get(columns_url, headers=owner).json()["columns"]
    resp = client.post(columns_url, headers=owner, json={"name": "to do"})
    assert resp.status_code == 409
    assert resp.json()["success"] is False
    assert client.get(columns_url, headers=owner).json()["columns"] == before


def test_create_column_requires_name(client, owner, columns_url):
    assert client.post(columns_url, headers=owner, json={"order": 1}).status_code == 400


def test_rename_column_updates_card_status(client, owner, columns_url):
    resp = client.put(f"{columns_url}/To Do", headers=owner, json={"name": "Doing"})
    assert resp.status_code == 200
    doing = resp.json()["columns"][0]
    assert doing["name"] == "Doing"
    assert [card["status"] for card in doing["cards"]] == ["Doing"]


def test_rename_collision_is_conflict(client, owner, columns_url):
    resp = client.put(f"{columns_url}/To Do", headers=owner, json={"name": "done"})
    assert resp.status_code == 409


def test_replace_cards_and_reorder(client, owner, columns_url):
    resp = client.put(
        f"{columns_url}/Done",
        headers=owner,
        json={"order": 1, "cards": [{"title": "Ship it", "assignee": None}]},
    )
    body = resp.json()
    assert column_names(body) == ["Done", "To Do", "In Progress", "In Review"]
    assert body["column"]["cards"][0]["title"] == "Ship it"
    assert body["column"]["cards"][0]["status"] == "Done"


def test_update_unknown_column_is_not_found(client, owner, columns_url):
    assert client.put(f"{columns_url}/Nope", headers=owner, json={"name": "X"}).status_code == 404


def test_delete_non_empty_column_requires_target(client, owner, columns_url):
    resp = client.delete(f"{columns_url}/To Do", headers=owner)
    assert resp.status_code == 400
    missing = client.delete(f"{columns_url}/To Do", headers=owner, params={"targetColumn": "Nope"})
    assert missing.status_code == 404
    assert len(client.get(columns_url, headers=owner).json()["columns"]) == 4


def test_delete_column_migrates_cards(client, owner, columns_url):
    resp = client.delete(f"{columns_url}/To Do", headers=owner, params={"targetColumn": "Done"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["removedColumn"]["name"] == "To Do"
    assert column_names(body) == ["In Progress", "In Review", "Done"]
    assert [c["order"] for c in body["columns"]] == [1, 2, 3]
    done = body["columns"][2]
    assert len(done["cards"]) == 1
    assert done["cards"][0]["status"] == "Done"


def test_delete_every_column_leaves_empty_board(client, owner, columns_url):
    client.delete(f"{columns_url}/To Do", headers=owner, params={"targetColumn": "Done"})
    for name in ["In Progress", "In Review"]:
        client.delete(f"{columns_url}/{name}", headers=owner)
    client.put(f"{columns_url}/Done", headers=owner, json={"cards": []})
    resp = client.delete(f"{columns_url}/Done", headers=owner)
    assert resp.status_code == 200
    assert client.get(columns_url, headers=owner).json()["columns"] == []


def test_collaborator_can_edit_columns(client, owner, signup, project, columns_url):
    bob = signup("bob@example.com")
    client.post(f"/projects/{project['id']}/invites", headers=owner, json={"emails": ["bob@example.com"]})
    resp = client.post(columns_url, headers=bob, json={"name": "QA"})
    assert resp.status_code == 201


def test_non_member_cannot_see_columns(client, signup, columns_url):
    stranger = signup("stranger@example.com")
    assert client.get(columns_url, headers=stranger).status_code == 404
    assert client.post(columns_url, headers=stranger, json={"name": "QA"}).status_code == 404


def test_column_edit_checks_if_match(client, owner, columns_url):
    resp = client.post(columns_url, headers={**owner, "If-Match": '"7"'}, json={"name": "QA"})
    assert resp.status_code == 412


def test_column_with_slash_in_name_stays_addressable(client, owner, columns_url):
    created = client.post(columns_url, headers=owner, json={"name": "QA/Review"})
    assert created.status_code == 201

    renamed = client.put(f"{columns_url}/QA/Review", headers=owner, json={"name": "QA/Final"})
    assert renamed.status_code == 200
    assert renamed.json()["column"]["name"] == "QA/Final"

    removed = client.delete(f"{columns_url}/QA%2FFinal", headers=owner)
    assert removed.status_code == 200
    assert removed.json()["removedColumn"]["name"] == "QA/Final"
    assert column_names(removed.json()) == ["To Do", "In Progress", "In Review", "Done"]
