import pytest


@pytest.fixture()
def owner(signup):
    return signup("owner@example.com")


@pytest.fixture()
def project(client, owner):
    return client.post("/projects", headers=owner, json={"name": "Apollo"}).json()["project"]


@pytest.fixture()
def url(project):
    return f"/projects/{project['id']}"


def pending_invites(client, headers, url):
    invites = client.get(f"{url}/members", headers=headers).json()["invites"]
    return [i for i in invites if i["status"] == "pending"]


def test_invite_unknown_email_twice(client, owner, url):
    first = client.post(f"{url}/invites", headers=owner, json={"emails": ["new@example.com"]})
    assert first.status_code == 200
    assert first.json()["results"]["invited"] == ["new@example.com"]

    second = client.post(f"{url}/invites", headers=owner, json={"emails": [{"email": "NEW@example.com"}]})
    assert second.json()["results"]["alreadyInvited"] == ["new@example.com"]
    assert len(pending_invites(client, owner, url)) == 1


def test_invite_existing_account_grants_membership(client, owner, signup, url):
    client.post(f"{url}/invites", headers=owner, json={"emails": ["bob@example.com"]})
    bob = signup("bob@example.com")

    resp = client.post(f"{url}/invites", headers=owner, json={"emails": ["bob@example.com"]})
    assert resp.json()["results"]["added"] == ["bob@example.com"]

    members = client.get(f"{url}/members", headers=owner).json()
    assert [m["role"] for m in members["members"]] == ["owner", "collaborator"]
    assert [i["status"] for i in members["invites"]] == ["accepted"]
    assert client.get(url, headers=bob).status_code == 200


def test_invite_reports_invalid_entries(client, owner, url):
    resp = client.post(f"{url}/invites", headers=owner, json={"emails": ["ok@example.com", 5, {"x": 1}, " "]})
    results = resp.json()["results"]
    assert results["invited"] == ["ok@example.com"]
    assert results["invalidEmails"] == [5, {"x": 1}, " "]


def test_invite_requires_emails_list(client, owner, url):
    assert client.post(f"{url}/invites", headers=owner, json={"emails": []}).status_code == 400
    assert client.post(f"{url}/invites", headers=owner, json={}).status_code == 400


def test_collaborator_cannot_invite(client, owner, signup, url):
    bob = signup("bob@example.com")
    client.post(f"{url}/invites", headers=owner, json={"emails": ["bob@example.com"]})
    resp = client.post(f"{url}/invites", headers=bob, json={"emails": ["eve@example.com"]})
    assert resp.status_code == 403


def test_accept_invite_flow(client, owner, signup, project, url):
    client.post(f"{url}/invites", headers=owner, json={"emails": ["carol@example.com"]})
    carol = signup("carol@example.com")
    assert client.get(url, headers=carol).status_code == 404

    mine = client.get("/invites", headers=carol).json()["invites"]
    assert [(i["projectId"], i["projectName"]) for i in mine] == [(project["id"], "Apollo")]

    resp = client.post(f"{url}/invites/accept", headers=carol)
    assert resp.status_code == 200
    assert client.get(url, headers=carol).status_code == 200
    assert client.get("/invites", headers=carol).json()["invites"] == []

    again = client.post(f"{url}/invites/accept", headers=carol)
    assert again.status_code == 404


def test_revoke_owner_is_not_removable(client, owner, url):
    resp = client.post(f"{url}/members/revoke", headers=owner, json={"emails": ["owner@example.com"]})
    assert resp.status_code == 404
    assert resp.json()["result"]["notRemovable"] == ["owner@example.com"]
    members = client.get(f"{url}/members", headers=owner).json()["members"]
    assert [m["role"] for m in members] == ["owner"]


def test_revoke_member_and_invite(client, owner, signup, url):
    bob = signup("bob@example.com")
    client.post(f"{url}/invites", headers=owner, json={"emails": ["bob@example.com", "dan@example.com"]})

    resp = client.post(
        f"{url}/members/revoke",
        headers=owner,
        json={"emails": ["bob@example.com", "dan@example.com", "zed@example.com"]},
    )
    assert resp.status_code == 200
    result = resp.json()["result"]
    assert result["removed"] == ["bob@example.com"]
    assert result["cancelled"] == ["dan@example.com"]
    assert result["notFound"] == ["zed@example.com"]

    assert client.get(url, headers=bob).status_code == 404
    assert pending_invites(client, owner, url) == []


def test_revoke_nothing_is_not_found_without_write(client, owner, url):
    resp = client.post(f"{url}/members/revoke", headers=owner, json={"emails": ["ghost@example.com"]})
    assert resp.status_code == 404
    assert resp.json()["success"] is False
    assert client.get(url, headers=owner).json()["project"]["version"] == 1
