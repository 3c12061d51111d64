import asyncio

import pytest

from job_tracker.fixtures import Fixtures

ACME = {"company_name": "Acme", "job_title": "Engineer", "status": "applied"}


def _apps(user_id: str, n: int) -> list[dict]:
    return [{**ACME, "job_title": f"Engineer {i}", "created_by": user_id} for i in range(n)]


# ── Insert ─────────────────────────────────────────────────────────────────────

async def test_insert_assigns_unique_ids_and_equal_timestamps(client, user_a):
    result = await client.from_("applications").insert(_apps(user_a.id, 20))

    assert result.error is None
    assert len({row["id"] for row in result.data}) == 20
    for row in result.data:
        assert row["created_at"] is not None
        assert row["created_at"] == row["updated_at"]


async def test_insert_single_record_with_single(client, user_a):
    result = await client.from_("applications").insert({**ACME, "created_by": user_a.id}).select().single()

    assert result.error is None
    assert result.data["company_name"] == "Acme"
    assert result.data["status"] == "applied"
    assert result.data["created_by"] == user_a.id


async def test_insert_defaults_status_to_applied(client, user_a):
    result = await client.from_("applications").insert(
        {"company_name": "Acme", "job_title": "Engineer", "created_by": user_a.id}
    ).single()
    assert result.data["status"] == "applied"


async def test_insert_keeps_extra_columns(client, user_a):
    result = await client.from_("applications").insert({**ACME, "created_by": user_a.id, "referral": "Jane"}).single()
    assert result.data["referral"] == "Jane"


@pytest.mark.parametrize("record,code", [
    ({"company_name": "Acme"}, "23502"),
    ({"company_name": None, "job_title": "Engineer"}, "23502"),
    ({**ACME, "status": "dreaming"}, "22P02"),
])
async def test_insert_constraint_errors(client, user_a, record, code):
    result = await client.from_("applications").insert({**record, "created_by": user_a.id})

    assert result.data is None
    assert result.error.code == code
    assert client.database.rows("applications") == []


async def test_insert_unknown_owner_is_foreign_key_violation(client, user_a):
    result = await client.from_("applications").insert({**ACME, "created_by": "no-such-user"})
    assert result.error.code == "23503"


async def test_insert_for_another_user_is_rejected(client, fixtures, user_a, user_b):
    await fixtures.sign_in_as(user_a)
    result = await client.from_("applications").insert({**ACME, "created_by": user_b.id})
    assert result.error.code == "42501"


async def test_insert_without_session_is_rejected(client, user_a):
    await client.auth.sign_out()
    result = await client.from_("applications").insert({**ACME, "created_by": user_a.id})
    assert result.error.code == "42501"


async def test_insert_duplicate_id(client, user_a):
    first = await client.from_("applications").insert({**ACME, "created_by": user_a.id}).single()
    again = await client.from_("applications").insert({**ACME, "id": first.data["id"], "created_by": user_a.id})
    assert again.error.code == "23505"


async def test_insert_batch_is_all_or_nothing(client, user_a):
    result = await client.from_("applications").insert([
        {**ACME, "created_by": user_a.id},
        {"company_name": "Broken", "created_by": user_a.id},
    ])
    assert result.error.code == "23502"
    assert client.database.rows("applications") == []


async def test_unknown_table(client):
    result = await client.from_("contacts").select()
    assert result.data is None
    assert result.error.code == "42P01"


async def test_shared_tables_accept_inserts_from_anyone(client):
    result = await client.from_("companies").insert({"name": "Acme", "industry": "Software"}).single()
    assert result.error is None
    assert result.data["industry"] == "Software"


# ── Reads & row-level security ─────────────────────────────────────────────────

async def test_owner_sees_record_other_user_sees_nothing(client, fixtures, user_a, user_b):
    await fixtures.sign_in_as(user_a)
    inserted = await client.from_("applications").insert({**ACME, "created_by": user_a.id}).single()

    mine = await client.from_("applications").select().eq("created_by", user_a.id)
    assert mine.error is None
    assert mine.data == [inserted.data]

    await fixtures.sign_in_as(user_b)
    theirs = await client.from_("applications").select().eq("created_by", user_a.id)
    assert theirs.error is None
    assert theirs.data == []


async def test_reads_without_session_see_no_owned_rows(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    fixtures.create_company(name="Acme")
    await client.auth.sign_out()

    assert (await client.from_("applications").select()).data == []
    assert len((await client.from_("companies").select()).data) == 1


async def test_builder_keeps_the_session_it_was_created_with(client, fixtures, user_a, user_b):
    fixtures.create_application(user_a.id)
    await fixtures.sign_in_as(user_a)
    query = client.from_("applications").select()
    await fixtures.sign_in_as(user_b)

    assert len((await query).data) == 1
    assert (await client.from_("applications").select()).data == []


# ── Update ─────────────────────────────────────────────────────────────────────

async def test_update_status_is_visible_and_notifies_subscriber(client, user_a):
    await client.realtime.connect()
    received = []
    client.realtime.subscribe("UPDATE", "public", "applications", received.append)

    inserted = (await client.from_("applications").insert({**ACME, "created_by": user_a.id}).single()).data
    result = await client.from_("applications").update({"status": "interviewing"}).eq("id", inserted["id"])
    assert result.error is None

    current = (await client.from_("applications").select().eq("id", inserted["id"]).single()).data
    assert current["status"] == "interviewing"
    assert current["updated_at"] > inserted["updated_at"]
    assert len(received) == 1
    assert received[0]["status"] == "interviewing"


async def test_update_leaves_other_fields_alone(client, user_a):
    inserted = (await client.from_("applications").insert(
        {**ACME, "notes": "referral", "created_by": user_a.id}
    ).single()).data
    updated = (await client.from_("applications").update({"location": "Berlin"}).eq("id", inserted["id"]).single()).data

    assert updated["location"] == "Berlin"
    for field in ("company_name", "job_title", "status", "notes", "created_at", "created_by"):
        assert updated[field] == inserted[field]


async def test_update_ignores_id_timestamps_and_owner(client, fixtures, user_a, user_b):
    await fixtures.sign_in_as(user_a)
    inserted = (await client.from_("applications").insert({**ACME, "created_by": user_a.id}).single()).data
    updated = (await client.from_("applications").update({
        "id": "other",
        "created_at": "2000-01-01T00:00:00+00:00",
        "created_by": user_b.id,
        "notes": "moved",
    }).eq("id", inserted["id"]).single()).data

    assert updated["id"] == inserted["id"]
    assert updated["created_at"] == inserted["created_at"]
    assert updated["created_by"] == user_a.id
    assert updated["notes"] == "moved"


async def test_repeated_updates_strictly_increase_updated_at(client, user_a):
    row = (await client.from_("applications").insert({**ACME, "created_by": user_a.id}).single()).data
    stamps = [row["updated_at"]]
    for i in range(5):
        row = (await client.from_("applications").update({"notes": str(i)}).eq("id", row["id"]).single()).data
        stamps.append(row["updated_at"])
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == len(stamps)


async def test_invalid_update_writes_nothing(client, user_a):
    row = (await client.from_("applications").insert({**ACME, "created_by": user_a.id}).single()).data
    result = await client.from_("applications").update({"status": "dreaming"}).eq("id", row["id"])

    assert result.error.code == "22P02"
    assert client.database.get("applications", row["id"]) == row


async def test_non_owner_update_and_delete_are_silently_empty(client, fixtures, user_a, user_b):
    app = fixtures.create_application(user_a.id)
    await fixtures.sign_in_as(user_b)

    updated = await client.from_("applications").update({"status": "rejected"}).eq("id", app["id"])
    deleted = await client.from_("applications").delete().eq("id", app["id"])

    assert updated.error is None and updated.data == []
    assert deleted.error is None and deleted.data == []
    assert client.database.get("applications", app["id"]) == app


async def test_non_owner_update_and_delete_are_errors_under_strict_policy(strict_client):
    fixtures = Fixtures(strict_client)
    owner = await fixtures.create_user("owner@example.com")
    await fixtures.create_user("intruder@example.com")
    app = fixtures.create_application(owner.id)

    updated = await strict_client.from_("applications").update({"status": "rejected"}).eq("id", app["id"])
    deleted = await strict_client.from_("applications").delete().eq("id", app["id"])

    assert updated.error.code == "42501"
    assert deleted.error.code == "42501"
    assert strict_client.database.get("applications", app["id"]) == app


# ── Delete ─────────────────────────────────────────────────────────────────────

async def test_delete_cascades_to_activities_only(client, fixtures, user_a):
    await client.realtime.connect()
    company = fixtures.create_company(name="Acme")
    doomed = fixtures.create_application(user_a.id, company_id=company["id"])
    kept = fixtures.create_application(user_a.id, job_title="Other")
    fixtures.create_activity(doomed["id"], user_a.id)
    fixtures.create_activity(doomed["id"], user_a.id)
    survivor = fixtures.create_activity(kept["id"], user_a.id)
    fixtures.create_job()

    result = await client.from_("applications").delete().eq("id", doomed["id"])

    assert [row["id"] for row in result.data] == [doomed["id"]]
    assert client.database.get("applications", doomed["id"]) is None
    assert client.database.rows("application_activities") == [survivor]
    assert client.database.rows("companies") == [company]
    assert len(client.database.rows("jobs")) == 1
    deletes = [e for e in client.realtime.events() if e.event == "DELETE"]
    assert sorted(e.table for e in deletes) == ["application_activities", "application_activities", "applications"]


async def test_deleting_company_clears_reference(client, fixtures, user_a):
    company = fixtures.create_company(name="Acme")
    app = fixtures.create_application(user_a.id, company_id=company["id"])

    result = await client.from_("companies").delete().eq("id", company["id"])

    assert result.error is None
    row = client.database.get("applications", app["id"])
    assert row["company_id"] is None
    assert row["updated_at"] > app["updated_at"]


async def test_delete_by_filter(client, fixtures, user_a):
    for status in ("applied", "rejected", "ghosted"):
        fixtures.create_application(user_a.id, status=status)

    result = await client.from_("applications").delete().in_("status", ["rejected", "ghosted"])

    assert len(result.data) == 2
    assert [r["status"] for r in client.database.rows("applications")] == ["applied"]


# ── Pagination, ordering & cardinality ─────────────────────────────────────────

async def test_range_pages_through_two_inserts(client, user_a):
    await client.from_("applications").insert(_apps(user_a.id, 8))
    await client.from_("applications").insert(_apps(user_a.id, 7))

    query = client.from_("applications").select().eq("created_by", user_a.id).order("created_at")
    first = (await query.range(0, 9)).data
    second = (await query.range(10, 19)).data

    assert len(first) == 10
    assert len(second) == 5
    assert {r["id"] for r in first}.isdisjoint(r["id"] for r in second)


async def test_order_desc_and_limit(client, fixtures, user_a):
    for title in ("b", "c", "a"):
        fixtures.create_application(user_a.id, job_title=title)
    result = await client.from_("applications").select("job_title").order("job_title", desc=True).limit(2)
    assert result.data == [{"job_title": "c"}, {"job_title": "b"}]


async def test_single_without_rows(client, user_a):
    result = await client.from_("applications").select().eq("id", "missing").single()
    assert result.error.code == "PGRST116"
    assert result.error.message == "No rows found"


async def test_single_with_many_rows(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    fixtures.create_application(user_a.id)
    result = await client.from_("applications").select().single()
    assert result.error.code == "PGRST116"
    assert "multiple rows returned" in result.error.message


async def test_maybe_single_without_rows(client, user_a):
    result = await client.from_("applications").select().eq("id", "missing").maybe_single()
    assert result.error is None
    assert result.data is None


async def test_execute_and_await_give_the_same_result(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    query = client.from_("applications").select("company_name")
    assert (await query.execute()) == (await query)


async def test_concurrent_operations_resolve_in_call_order(client, user_a):
    results = await asyncio.gather(*(
        client.from_("applications").insert({**ACME, "job_title": str(i), "created_by": user_a.id}).single()
        for i in range(5)
    ))
    stamps = [r.data["created_at"] for r in results]
    assert stamps == sorted(stamps)


# ── Filters ────────────────────────────────────────────────────────────────────

async def test_or_filter(client, fixtures, user_a):
    fixtures.create_application(user_a.id, company_name="Acme", job_title="Go dev")
    fixtures.create_application(user_a.id, company_name="Globex", job_title="Python dev")
    fixtures.create_application(user_a.id, company_name="Initech", job_title="Rust dev")

    result = await client.from_("applications").select("company_name").or_(
        "company_name.eq.Acme,job_title.ilike.%python%"
    ).order("company_name")

    assert result.data == [{"company_name": "Acme"}, {"company_name": "Globex"}]


async def test_malformed_or_filter_does_not_filter(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    fixtures.create_application(user_a.id)
    result = await client.from_("applications").select().or_("status.eq")
    assert result.error is None
    assert len(result.data) == 2


async def test_not_filter(client, fixtures, user_a):
    for status in ("applied", "rejected", "ghosted"):
        fixtures.create_application(user_a.id, status=status)

    result = await client.from_("applications").select("status").not_("status", "in", ["rejected", "ghosted"])
    unsupported = await client.from_("applications").select("status").not_("status", "approx", "x")

    assert result.data == [{"status": "applied"}]
    assert len(unsupported.data) == 3


async def test_not_in_leaves_out_null_columns(client, fixtures, user_a):
    company = fixtures.create_company(name="Acme")
    fixtures.create_application(user_a.id, job_title="Linked", company_id=company["id"])
    fixtures.create_application(user_a.id, job_title="Unlinked")

    result = await client.from_("applications").select("job_title").not_("company_id", "in", ["other"])

    assert result.data == [{"job_title": "Linked"}]


async def test_comparison_with_incomparable_values_matches_nothing(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    result = await client.from_("applications").select().gt("job_title", 5)
    assert result.data == []


async def test_is_null_filter(client, fixtures, user_a):
    fixtures.create_application(user_a.id, location="Berlin")
    fixtures.create_application(user_a.id)
    result = await client.from_("applications").select("location").is_("location", None)
    assert result.data == [{"location": None}]


# ── Projection & embedding ─────────────────────────────────────────────────────

async def test_embed_parent_and_children(client, fixtures, user_a):
    company = fixtures.create_company(name="Acme", website="https://acme.example.com")
    app = fixtures.create_application(user_a.id, company_id=company["id"])
    fixtures.create_activity(app["id"], user_a.id, description="first")

    result = await client.from_("applications").select(
        "id, companies(name), application_activities(description)"
    ).eq("id", app["id"]).single()

    assert result.data == {
        "id": app["id"],
        "companies": {"name": "Acme"},
        "application_activities": [{"description": "first"}],
    }


async def test_embed_missing_parent_is_none(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    result = await client.from_("applications").select("*, companies(*)").single()
    assert result.data["companies"] is None
    assert result.data["company_name"] == "Test Company"


async def test_embed_unknown_relation(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    result = await client.from_("applications").select("*, jobs(*)")
    assert result.error.code == "PGRST200"


async def test_select_unknown_column(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    result = await client.from_("applications").select("id, salary")
    assert result.error.code == "42703"


async def test_select_malformed_clause(client, user_a):
    result = await client.from_("applications").select("id job_title")
    assert result.error.code == "PGRST100"


# ── Simulated network ──────────────────────────────────────────────────────────

async def test_network_error(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    client.simulate_network_error()

    failed = await client.from_("applications").select()
    assert failed.data is None
    assert failed.error.code == "FETCH_ERROR"
    assert failed.error.message == "Network request failed"

    client.simulate_network_error(False)
    assert len((await client.from_("applications").select()).data) == 1


async def test_reset_clears_everything(client, fixtures, user_a):
    fixtures.create_application(user_a.id)
    client.reset()
    assert client.database.rows("applications") == []
    assert client.database.rows("users") == []
    assert client.auth.current_session is None
