def _member_body(**fields):
    body = {
        "first_name": "Ramesh",
        "last_name": "Patil",
        "gender": "Male",
        "marital_status": "Single",
        "dob": "1960-01-01",
    }
    body.update(fields)
    return body


def test_member_lifecycle(client):
    created = client.post("/v1/members", json=_member_body(village="Wai", mobile="9800000000"))
    assert created.status_code == 201
    member = created.json()
    assert member["member_id"] == "M0001"
    assert member["family_id"] == "F0001"
    assert member["is_primary"] is True
    assert member["phone"] == "9800000000"
    assert member["is_registered"] is True
    assert member["provisioning"]["account_username"] == "rameshpatil"
    assert member["provisioning"]["account_verified"] is True

    by_member_id = client.get("/v1/members/M0001")
    assert by_member_id.status_code == 200
    assert by_member_id.json()["id"] == member["id"]

    updated = client.put(f"/v1/members/{member['id']}", json={"occupation": "Farmer", "prefix": "Shri"})
    assert updated.status_code == 200
    assert updated.json()["occupation"] == "Farmer"
    assert updated.json()["full_name"] == "Shri Ramesh Patil"

    listed = client.get("/v1/members", params={"search": "ramesh"})
    assert listed.status_code == 200
    assert listed.json()["total"] == 1
    assert listed.json()["items"][0]["is_registered"] is True

    deleted = client.delete(f"/v1/members/{member['id']}")
    assert deleted.status_code == 204
    assert client.get(f"/v1/members/{member['id']}").status_code == 404


def test_legacy_flat_spouse_fields_create_spouse(client):
    created = client.post(
        "/v1/members",
        json=_member_body(marital_status="Married", spouse_name="Sita", spouse_gender="Female"),
    )
    assert created.status_code == 201
    member = created.json()
    assert member["spouse_id"] is not None
    assert member["spouse_full_name"] == "Sita Patil"

    family = client.get(f"/v1/members/{member['member_id']}/family")
    assert family.status_code == 200
    items = {item["id"]: item for item in family.json()["items"]}
    assert set(items) == {member["id"], member["spouse_id"]}
    assert items[member["spouse_id"]]["spouse_id"] == member["id"]


def test_legacy_nested_shape_is_accepted(client):
    created = client.post(
        "/v1/members",
        json={
            "marital_status": "Single",
            "personal_info": {
                "names": {"first_name": "Asha", "last_name": "Kale"},
                "gender": "Female",
                "dob": "1995-03-04",
            },
            "geography": {"village": "Satara"},
        },
    )
    assert created.status_code == 201
    assert created.json()["full_name"] == "Asha Kale"
    assert created.json()["village"] == "Satara"


def test_missing_fields_return_field_list(client):
    response = client.post("/v1/members", json={"first_name": "Ramesh", "last_name": "Patil"})
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Validation Failed"
    assert [error["field"] for error in body["errors"]] == ["gender", "marital_status", "dob"]


def test_invalid_field_value_is_validation_failure(client):
    response = client.post("/v1/members", json=_member_body(gender="Unknown"))
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "gender"


def test_duplicate_child_is_rejected(client):
    dad = client.post("/v1/members", json=_member_body()).json()
    child = _member_body(first_name="Amit", dob="1990-01-01", father_id=dad["id"])

    assert client.post("/v1/members", json=child).status_code == 201
    duplicate = client.post("/v1/members", json=child)
    assert duplicate.status_code == 409


def test_unknown_member_is_not_found(client):
    assert client.get("/v1/members/M0404").status_code == 404
    assert client.get("/v1/members/someone").status_code == 404
    assert client.put("/v1/members/404", json={"occupation": "Farmer"}).status_code == 404


def test_family_tree_reaches_birth_family(client):
    dad = client.post("/v1/members", json=_member_body(marital_status="Married", spouse={"first_name": "Sita"})).json()
    son = client.post(
        "/v1/members",
        json=_member_body(first_name="Amit", dob="1990-01-01", family_id=dad["family_id"], father_id=dad["id"]),
    ).json()
    groom = client.post("/v1/members", json=_member_body(first_name="Vijay", last_name="Joshi", dob="1988-01-01")).json()
    daughter = client.post(
        "/v1/members",
        json=_member_body(
            first_name="Asha",
            last_name="Joshi",
            maiden_name="Patil",
            gender="Female",
            dob="1992-01-01",
            family_id=groom["family_id"],
            father_id=dad["id"],
            mother_id=dad["spouse_id"],
        ),
    ).json()
    married = client.put(f"/v1/members/{groom['id']}", json={"marital_status": "Married", "spouse_id": daughter["id"]})
    assert married.status_code == 200

    tree = client.get(f"/v1/members/{daughter['member_id']}/family-tree")
    assert tree.status_code == 200
    ids = {item["id"] for item in tree.json()["items"]}
    assert {dad["id"], dad["spouse_id"], son["id"], daughter["id"], groom["id"]} <= ids

    family = client.get(f"/v1/members/{dad['id']}/family")
    assert daughter["id"] in {item["id"] for item in family.json()["items"]}


def test_create_family_moves_children_with_father(client):
    dad = client.post("/v1/members", json=_member_body(first_name="Kiran", family_id="Unassigned")).json()
    client.post(
        "/v1/members",
        json=_member_body(first_name="Amit", dob="1990-01-01", father_id=dad["id"], family_id="Unassigned"),
    )

    response = client.post(f"/v1/members/{dad['id']}/create-family")
    assert response.status_code == 200
    assert response.json()["moved_children"] == 1

    family_id = response.json()["family_id"]
    members = client.get("/v1/members", params={"family_id": family_id}).json()
    assert members["total"] == 2
    assert [item["is_primary"] for item in members["items"] if item["id"] == dad["id"]] == [True]


def test_matrimony_flag_only_for_unmarried_members(client):
    single = client.post("/v1/members", json=_member_body()).json()
    married = client.post("/v1/members", json=_member_body(first_name="Suresh", marital_status="Married")).json()

    shown = client.patch(f"/v1/members/{single['id']}/matrimony-status", json={"show_on_matrimony": True})
    assert shown.json()["show_on_matrimony"] is True

    hidden = client.patch(f"/v1/members/{married['id']}/matrimony-status", json={"show_on_matrimony": True})
    assert hidden.json()["show_on_matrimony"] is False


def test_dashboard_stats_refresh_after_writes(client):
    client.post("/v1/members", json=_member_body())
    first = client.get("/v1/members/stats/dashboard")
    assert first.status_code == 200
    assert first.json()["counts"]["total"] == 1

    client.post("/v1/members", json=_member_body(first_name="Suresh", dob="1965-01-01"))
    second = client.get("/v1/members/stats/dashboard")
    assert second.json()["counts"]["total"] == 2


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_update_rejects_clearing_required_field(client):
    member = client.post("/v1/members", json=_member_body()).json()

    response = client.put(f"/v1/members/{member['id']}", json={"first_name": ""})
    assert response.status_code == 400
    assert [error["field"] for error in response.json()["errors"]] == ["first_name"]
    assert client.get(f"/v1/members/{member['id']}").json()["first_name"] == "Ramesh"


def test_siblings_share_a_parent(client):
    dad = client.post("/v1/members", json=_member_body(marital_status="Married", spouse={"first_name": "Sita"})).json()
    elder = client.post(
        "/v1/members",
        json=_member_body(first_name="Amit", dob="1990-01-01", father_id=dad["id"], mother_id=dad["spouse_id"]),
    ).json()
    younger = client.post(
        "/v1/members",
        json=_member_body(first_name="Asha", gender="Female", dob="1993-01-01", father_id=dad["id"]),
    ).json()
    client.post("/v1/members", json=_member_body(first_name="Stranger", dob="1991-01-01"))

    response = client.get(f"/v1/members/{elder['member_id']}/siblings")
    assert response.status_code == 200
    assert response.json()["target_id"] == elder["id"]
    assert [item["id"] for item in response.json()["items"]] == [younger["id"]]

    assert client.get(f"/v1/members/{dad['id']}/siblings").json()["items"] == []
    assert client.get("/v1/members/M0404/siblings").status_code == 404


def test_members_by_pincode_with_filters(client):
    client.post("/v1/members", json=_member_body(pincode="415001"))
    client.post("/v1/members", json=_member_body(first_name="Asha", gender="Female", pincode="415001"))
    client.post("/v1/members", json=_member_body(first_name="Kiran", address="Station Road, Wai 415001"))
    client.post("/v1/members", json=_member_body(first_name="Suresh", pincode="411001"))

    everyone = client.get("/v1/members/by-pincode/415001")
    assert everyone.status_code == 200
    assert [item["first_name"] for item in everyone.json()["items"]] == ["Asha", "Kiran", "Ramesh"]

    women = client.get("/v1/members/by-pincode/415001", params={"gender": "Female", "marital_status": "Single"})
    assert [item["first_name"] for item in women.json()["items"]] == ["Asha"]

    married = client.get("/v1/members/by-pincode/415001", params={"marital_status": "Married"})
    assert married.json()["items"] == []


def test_search_by_maiden_name(client):
    client.post(
        "/v1/members",
        json=_member_body(first_name="Asha", last_name="Joshi", maiden_name="Patil", gender="Female"),
    )
    client.post("/v1/members", json=_member_body(first_name="Meera", last_name="Kale", gender="Female"))

    response = client.get("/v1/members/search/maiden-name/pat")
    assert response.status_code == 200
    assert [item["full_name"] for item in response.json()["items"]] == ["Asha Joshi"]
