"""Query sanitizer: exact matches for emails/UUIDs, escaped ilike otherwise."""

from macrotrack.modules.records.query_helper import QueryHelper, escape_like, is_email, is_uuid

from tests.conftest import FakeSupabase

UUID = "0dac340b-6c1b-4236-915a-590b055a730a"


def query():
    return FakeSupabase().table("progress_entries").select("*")


def last_call(q):
    return q.calls[-1]


def test_detectors():
    assert is_email("coach2@healthcenter.com")
    assert not is_email("coach2@healthcenter")
    assert is_uuid(UUID)
    assert not is_uuid("0dac340b-6c1b-0236-915a-590b055a730a")  # version 0
    assert not is_uuid(None)


def test_escape_like():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


def test_search_email_uses_exact_match():
    q = QueryHelper.apply_search_filter(query(), "coach2@healthcenter.com", "user_profiles")
    assert last_call(q) == ("eq", ("user_email", "coach2@healthcenter.com"), {})


def test_search_uuid_uses_user_id():
    q = QueryHelper.apply_search_filter(query(), UUID)
    assert last_call(q) == ("eq", ("user_id", UUID), {})


def test_search_text_uses_escaped_ilike():
    q = QueryHelper.apply_search_filter(query(), "100%")
    assert last_call(q) == ("ilike", ("user_email", "%100\\%%"), {})


def test_search_empty_or_missing_query_is_noop():
    q = query()
    assert QueryHelper.apply_search_filter(q, "") is q
    assert QueryHelper.apply_search_filter(None, "term") is None


def test_search_never_raises():
    class Exploding:
        def eq(self, *args):
            raise RuntimeError("builder broke")

    q = Exploding()
    assert QueryHelper.apply_search_filter(q, "a@b.co") is q


def test_filter_by_user_id_rejects_non_uuid():
    q = query()
    assert QueryHelper.filter_by_user_id(q, "1 or 1=1").calls == q.calls
    assert last_call(QueryHelper.filter_by_user_id(query(), UUID)) == ("eq", ("user_id", UUID), {})


def test_filter_by_email():
    assert QueryHelper.filter_by_email(query(), "not an email").calls == [("select", ("*",), {})]
    q = QueryHelper.filter_by_email(query(), "a@b.co", column="email")
    assert last_call(q) == ("eq", ("email", "a@b.co"), {})


def test_pagination_caps_limit_and_clamps_offset():
    q = QueryHelper.apply_pagination(query(), 5000, 20)
    assert ("limit", (1000,), {}) in q.calls
    assert last_call(q) == ("range", (20, 1019), {})

    q = QueryHelper.apply_pagination(query(), "abc", "-5")
    assert ("limit", (100,), {}) in q.calls
    assert last_call(q) == ("range", (0, 99), {})


def test_pagination_without_values_is_noop():
    q = QueryHelper.apply_pagination(query(), None, None)
    assert q.calls == [("select", ("*",), {})]


def test_sorting_whitelist():
    q = QueryHelper.apply_sorting(query(), "date", ascending=True)
    assert last_call(q) == ("order", ("date",), {"desc": False})

    q = QueryHelper.apply_sorting(query(), "password; drop table")
    assert last_call(q) == ("order", ("created_at",), {"desc": True})
