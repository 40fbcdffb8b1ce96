from conftest import add_user


def make_category(client, headers, name="Fuel"):
    resp = client.post("/expense-categories", json={"name": name, "color": "#ff8800"}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def log_expense(client, headers, amount, **extra):
    resp = client.post("/expenses", json={"amount": amount, "vendor": "Shell", **extra}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_category_names_unique_and_color_normalized(client, admin_headers):
    category = make_category(client, admin_headers)
    assert category["color"] == "#FF8800"

    dup = client.post("/expense-categories", json={"name": "Fuel"}, headers=admin_headers)
    assert dup.status_code == 409


def test_category_in_use_is_deactivated_not_deleted(client, admin_headers):
    used = make_category(client, admin_headers, "Fuel")
    unused = make_category(client, admin_headers, "Tolls")
    log_expense(client, admin_headers, "40.00", category_id=used["id"])

    resp = client.delete(f"/expense-categories/{used['id']}", headers=admin_headers)
    assert resp.json() == {"message": "Category has expenses and was deactivated", "deactivated": True}

    resp = client.delete(f"/expense-categories/{unused['id']}", headers=admin_headers)
    assert resp.json()["deactivated"] is False

    active = client.get("/expense-categories", headers=admin_headers).json()
    assert active == []

    # Inactive categories can't take new expenses
    bad = client.post("/expenses", json={"amount": "5.00", "category_id": used["id"]}, headers=admin_headers)
    assert bad.status_code == 400


def test_technicians_see_only_their_own_expenses(client, admin_headers):
    tech_a, _ = add_user(client, admin_headers, "tech_a")
    tech_b, _ = add_user(client, admin_headers, "tech_b")
    mine = log_expense(client, tech_a, "12.50")
    theirs = log_expense(client, tech_b, "30.00")

    listed = client.get("/expenses", headers=tech_a).json()
    assert [e["id"] for e in listed] == [mine["id"]]
    assert client.get(f"/expenses/{theirs['id']}", headers=tech_a).status_code == 404

    everyone = client.get("/expenses", headers=admin_headers).json()
    assert {e["id"] for e in everyone} == {mine["id"], theirs["id"]}


def test_owner_edits_only_while_pending(client, admin_headers):
    tech, _ = add_user(client, admin_headers, "tech")
    expense = log_expense(client, tech, "20.00")

    resp = client.put(f"/expenses/{expense['id']}", json={"amount": "22.00"}, headers=tech)
    assert resp.status_code == 200
    assert resp.json()["amount"] == 22.0

    client.post(f"/expenses/{expense['id']}/approve", headers=admin_headers)
    assert client.put(f"/expenses/{expense['id']}", json={"amount": "99.00"}, headers=tech).status_code == 400
    assert client.delete(f"/expenses/{expense['id']}", headers=tech).status_code == 400


def test_review_workflow_notifies_owner(client, admin_headers):
    tech, _ = add_user(client, admin_headers, "tech")
    expense = log_expense(client, tech, "64.10")

    assert client.post(f"/expenses/{expense['id']}/approve", headers=tech).status_code == 403
    assert client.post(f"/expenses/{expense['id']}/reimburse", headers=admin_headers).status_code == 400

    approved = client.post(f"/expenses/{expense['id']}/approve", headers=admin_headers).json()
    assert approved["status"] == "approved"
    assert approved["reviewed_by"] is not None

    reimbursed = client.post(f"/expenses/{expense['id']}/reimburse", headers=admin_headers).json()
    assert reimbursed["status"] == "reimbursed"

    notifications = client.get("/notifications", headers=tech).json()
    assert sorted(n["title"] for n in notifications) == ["Expense approved", "Expense reimbursed"]


def test_reject_records_reason(client, admin_headers):
    tech, _ = add_user(client, admin_headers, "tech")
    expense = log_expense(client, tech, "15.00")

    rejected = client.post(
        f"/expenses/{expense['id']}/reject", json={"reason": "Personal purchase"}, headers=admin_headers
    ).json()
    assert rejected["status"] == "rejected"
    assert rejected["review_notes"] == "Personal purchase"


def test_summary_groups_by_category_and_status(client, admin_headers):
    fuel = make_category(client, admin_headers, "Fuel")
    parts = make_category(client, admin_headers, "Parts")
    log_expense(client, admin_headers, "40.00", category_id=fuel["id"])
    log_expense(client, admin_headers, "10.25", category_id=fuel["id"])
    approved = log_expense(client, admin_headers, "120.00", category_id=parts["id"])
    log_expense(client, admin_headers, "5.00")
    client.post(f"/expenses/{approved['id']}/approve", headers=admin_headers)

    summary = client.get("/expenses/summary", headers=admin_headers).json()
    assert summary["total_amount"] == 175.25
    assert summary["expense_count"] == 4
    assert [(c["category_name"], c["total"], c["count"]) for c in summary["by_category"]] == [
        ("Parts", 120.0, 1),
        ("Fuel", 50.25, 2),
        ("Uncategorized", 5.0, 1),
    ]
    assert summary["by_status"]["pending"] == 55.25
    assert summary["by_status"]["approved"] == 120.0


def test_date_range_filter(client, admin_headers):
    log_expense(client, admin_headers, "10.00", expense_date="2024-03-01T09:00:00")
    log_expense(client, admin_headers, "20.00", expense_date="2024-03-31T23:30:00")
    log_expense(client, admin_headers, "30.00", expense_date="2024-04-01T08:00:00")

    march = client.get(
        "/expenses", params={"start_date": "2024-03-01", "end_date": "2024-03-31"}, headers=admin_headers
    ).json()
    assert sorted(e["amount"] for e in march) == [10.0, 20.0]
