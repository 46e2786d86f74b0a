import pytest

from salesadmin.errors import AggregationIntegrityError
from salesadmin.models import AppType, EventAppPlatform, ParticipationStatus, PlatformType
from salesadmin.participation import (
    ParticipationFilter,
    aggregate_event_apps,
    apply_filters,
    count_statuses,
    format_contact_emails,
    is_status_ok,
    load_eligible_platforms,
    load_event_apps,
    load_studios,
    summarize_platforms,
)


@pytest.mark.parametrize("status", [s for s in ParticipationStatus])
def test_status_is_ok_iff_prefixed(status):
    assert is_status_ok(status) is status.value.startswith("OK_")


def test_status_ok_plain_strings_and_missing():
    assert is_status_ok("OK_Pending") is True
    assert is_status_ok("NOK_Declined") is False
    assert is_status_ok(None) is False


@pytest.fixture
def catalog(factory):
    """Two studios, three platforms and a few releases, none in an event yet."""
    forge = factory.studio("Pixel Forge")
    moth = factory.studio("Moth Works")
    steam = factory.platform("Steam", PlatformType.Steam)
    gog = factory.platform("GOG", PlatformType.Generic)
    switch = factory.platform("Switch", PlatformType.Generic)

    beta = factory.app("Beta Quest", forge)
    alpha = factory.app("Alpha Run", moth, type=AppType.DLC)
    return {
        "forge": forge,
        "moth": moth,
        "steam": steam,
        "gog": gog,
        "switch": switch,
        "beta": beta,
        "alpha": alpha,
        "beta_steam": factory.app_platform(beta, steam),
        "beta_switch": factory.app_platform(beta, switch),
        "alpha_steam": factory.app_platform(alpha, steam),
        "alpha_gog": factory.app_platform(alpha, gog),
    }


def test_aggregate_orders_apps_by_name_and_platforms_by_discovery(db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["beta_switch"])
    factory.participation(event, catalog["alpha_gog"])
    factory.participation(event, catalog["alpha_steam"])
    factory.participation(event, catalog["beta_steam"])

    event_apps = load_event_apps(db, event.id)

    assert [app.name for app in event_apps.app_list] == ["Alpha Run", "Beta Quest"]
    assert [platform.name for platform in event_apps.platform_list] == ["GOG", "Steam", "Switch"]
    alpha = event_apps.apps[catalog["alpha"].id]
    assert [entry.platform.name for entry in alpha.app_platforms] == ["GOG", "Steam"]


def test_aggregate_counts_one_entry_per_participation(db, factory, catalog):
    event = factory.event()
    other = factory.event("Winter Sale")
    factory.participation(event, catalog["alpha_steam"])
    factory.participation(event, catalog["alpha_gog"], status=ParticipationStatus.NOK_Declined)
    factory.participation(other, catalog["beta_steam"])

    event_apps = load_event_apps(db, event.id)

    assert list(event_apps.apps) == [catalog["alpha"].id]
    assert len(event_apps.apps[catalog["alpha"].id].app_platforms) == 2
    assert event_apps.studio_ids == [catalog["moth"].id]


def test_aggregate_twice_gives_same_structure(db, factory, catalog):
    event = factory.event()
    for key in ("beta_steam", "alpha_gog", "beta_switch"):
        factory.participation(event, catalog[key])

    def shape(event_apps):
        return (
            [(app.id, [entry.id for entry in app.app_platforms]) for app in event_apps.app_list],
            list(event_apps.platforms),
        )

    assert shape(load_event_apps(db, event.id)) == shape(load_event_apps(db, event.id))


def test_aggregate_fails_on_unresolvable_row():
    row = EventAppPlatform(id=7, event_id=1, app_platform_id=42, status=ParticipationStatus.OK_Confirmed)

    with pytest.raises(AggregationIntegrityError):
        aggregate_event_apps([row])


def test_load_event_apps_fails_on_dangling_release(db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["alpha_steam"])
    db.add(EventAppPlatform(event_id=event.id, app_platform_id=9999, status=ParticipationStatus.OK_Pending))
    db.commit()

    with pytest.raises(AggregationIntegrityError):
        load_event_apps(db, event.id)


def test_event_apps_page_reports_dangling_release(admin_client, db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["beta_steam"])
    db.add(EventAppPlatform(event_id=event.id, app_platform_id=9999, status=ParticipationStatus.OK_Pending))
    db.commit()

    response = admin_client.get(f"/admin/events/{event.id}/apps")

    assert response.status_code == 500
    assert "Failed to find app for participation" in response.text


def test_eligible_platforms_partition_releases(db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["alpha_steam"])
    factory.participation(event, catalog["beta_steam"])
    factory.participation(event, catalog["beta_switch"])

    event_apps = load_event_apps(db, event.id)
    eligible = load_eligible_platforms(db, event_apps)

    assert [(e.app_platform_id, e.platform.name) for e in eligible[catalog["alpha"].id]] == [
        (catalog["alpha_gog"].id, "GOG")
    ]
    assert eligible[catalog["beta"].id] == []

    for app_id, app in event_apps.apps.items():
        in_event = {entry.id for entry in app.app_platforms}
        addable = {e.app_platform_id for e in eligible[app_id]}
        all_releases = {ap.id for ap in app.app.app_platforms}
        assert in_event | addable == all_releases
        assert not in_event & addable


def test_filters_without_facets_return_input(db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["alpha_steam"])
    event_apps = load_event_apps(db, event.id)

    assert apply_filters(event_apps, ParticipationFilter()) is event_apps


def test_filters_with_unknown_platform_are_empty(db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["alpha_steam"])
    event_apps = load_event_apps(db, event.id)

    filtered = apply_filters(event_apps, ParticipationFilter(platform=frozenset({999})))

    assert filtered.app_list == []
    assert filtered.platform_list == []


def test_filter_by_platform_keeps_only_matching_platforms(db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["beta_steam"])
    factory.participation(event, catalog["beta_switch"])
    factory.participation(event, catalog["alpha_steam"])
    event_apps = load_event_apps(db, event.id)

    filtered = apply_filters(event_apps, ParticipationFilter(platform=frozenset({catalog["steam"].id})))

    assert [app.name for app in filtered.app_list] == ["Alpha Run", "Beta Quest"]
    assert [platform.name for platform in filtered.platform_list] == ["Steam"]


def test_platform_and_status_must_match_the_same_release(db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["alpha_steam"], status=ParticipationStatus.OK_Confirmed)
    factory.participation(event, catalog["alpha_gog"], status=ParticipationStatus.NOK_Declined)
    event_apps = load_event_apps(db, event.id)

    crossed = ParticipationFilter(
        platform=frozenset({catalog["steam"].id}),
        status=frozenset({ParticipationStatus.NOK_Declined}),
    )
    assert apply_filters(event_apps, crossed).app_list == []

    aligned = ParticipationFilter(
        platform=frozenset({catalog["gog"].id}),
        status=frozenset({ParticipationStatus.NOK_Declined}),
    )
    filtered = apply_filters(event_apps, aligned)
    assert [app.name for app in filtered.app_list] == ["Alpha Run"]
    assert [platform.name for platform in filtered.platform_list] == ["GOG"]


def test_studio_and_type_facets_test_the_app(db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["alpha_steam"])
    factory.participation(event, catalog["beta_steam"])
    event_apps = load_event_apps(db, event.id)

    by_studio = apply_filters(event_apps, ParticipationFilter(studio=frozenset({catalog["forge"].id})))
    assert [app.name for app in by_studio.app_list] == ["Beta Quest"]

    by_type = apply_filters(event_apps, ParticipationFilter(type=frozenset({AppType.DLC})))
    assert [app.name for app in by_type.app_list] == ["Alpha Run"]


def test_filter_query_string_round_trips_through_merge():
    filters = ParticipationFilter(status=frozenset({ParticipationStatus.OK_Pending}))
    merged = filters.merged(platform=[3, 1])

    assert merged.platform == frozenset({1, 3})
    assert merged.status == filters.status
    assert merged.to_query() == (
        "?filters%5Bplatform%5D%5B%5D=1&filters%5Bplatform%5D%5B%5D=3"
        "&filters%5Bstatus%5D%5B%5D=OK_Pending"
    )
    assert merged.to_query(edit_app_id=5).startswith("?edit_app_id=5&")
    assert ParticipationFilter().to_query() == "?"


def test_summaries_and_status_counts(db, factory, catalog):
    event = factory.event()
    factory.participation(event, catalog["alpha_steam"])
    factory.participation(event, catalog["beta_steam"], status=ParticipationStatus.NOK_Declined)
    factory.participation(event, catalog["beta_switch"])

    summaries = summarize_platforms(load_event_apps(db, event.id))
    assert [(s.platform.name, s.app_count, s.studio_count) for s in summaries] == [
        ("Steam", 2, 2),
        ("Switch", 1, 1),
    ]

    counts = dict(count_statuses(db, event.id))
    assert counts == {ParticipationStatus.OK_Confirmed: 2, ParticipationStatus.NOK_Declined: 1}


def test_contact_emails_skip_studios_without_main_contact(db, factory, catalog):
    user = factory.user("Kim", "kim@forge.example")
    factory.member(catalog["forge"], user, main_contact=True)

    studios = load_studios(db, [catalog["moth"].id, catalog["forge"].id])

    assert [studio.name for studio in studios] == ["Moth Works", "Pixel Forge"]
    assert format_contact_emails(studios) == '"Kim - Pixel Forge" <kim@forge.example>'
