from salesadmin.models import App, AppPlatform, AppPlatformLink, PlatformReleaseState, PlatformType


def _new_app_form(studio, steam, gog, **overrides):
    data = {
        "name": "Star Hopper",
        "type": "Game",
        "studio_id": str(studio.id),
        "comment": "",
        "platforms[0][platform_id]": str(steam.id),
        "platforms[0][checked]": "on",
        "platforms[0][release_state]": "Beta",
        "platforms[0][is_early_access]": "on",
        "platforms[0][links][0][url]": "https://store.steampowered.com/app/12345",
        "platforms[0][links][0][title]": "Store",
        "platforms[0][links][0][type]": "StorePage",
        "platforms[0][links][1][url]": "",
        "platforms[0][links][1][title]": "",
        "platforms[1][platform_id]": str(gog.id),
        "platforms[1][release_state]": "Released",
    }
    data.update(overrides)
    return data


def test_create_app_with_platforms_and_links(admin_client, db, factory):
    studio = factory.studio()
    steam = factory.platform("Steam", PlatformType.Steam)
    gog = factory.platform("GOG", PlatformType.Generic)

    response = admin_client.post("/admin/apps/new", data=_new_app_form(studio, steam, gog), follow_redirects=False)

    assert response.status_code == 303
    app = db.query(App).one()
    assert response.headers["location"] == f"/admin/apps/{app.id}"
    release = db.query(AppPlatform).one()
    assert release.platform_id == steam.id
    assert release.release_state == PlatformReleaseState.Beta
    assert release.is_early_access is True
    assert release.is_free_to_play is False
    assert [(link.url, link.title) for link in release.links] == [
        ("https://store.steampowered.com/app/12345", "Store")
    ]


def test_link_without_title_writes_nothing(admin_client, db, factory):
    studio = factory.studio()
    steam = factory.platform("Steam", PlatformType.Steam)
    gog = factory.platform("GOG", PlatformType.Generic)

    response = admin_client.post(
        "/admin/apps/new",
        data=_new_app_form(studio, steam, gog, **{"platforms[0][links][0][title]": ""}),
    )

    assert response.status_code == 400
    assert "A link with a URL needs a title" in response.text
    assert db.query(App).count() == 0
    assert db.query(AppPlatformLink).count() == 0


def test_duplicate_platform_rolls_back_whole_app(admin_client, db, factory):
    studio = factory.studio()
    steam = factory.platform("Steam", PlatformType.Steam)

    response = admin_client.post(
        "/admin/apps/new",
        data=_new_app_form(
            studio,
            steam,
            steam,
            **{"platforms[1][checked]": "on"},
        ),
    )

    assert response.status_code == 400
    assert db.query(App).count() == 0
    assert db.query(AppPlatform).count() == 0


def test_unknown_studio_is_a_form_error(admin_client, db, factory):
    steam = factory.platform("Steam", PlatformType.Steam)
    gog = factory.platform("GOG", PlatformType.Generic)
    studio = factory.studio()

    response = admin_client.post(
        "/admin/apps/new", data=_new_app_form(studio, steam, gog, studio_id="9999")
    )

    assert response.status_code == 400
    assert "Unknown studio" in response.text


def test_unknown_platform_writes_nothing(admin_client, db, factory):
    studio = factory.studio()
    steam = factory.platform("Steam", PlatformType.Steam)
    gog = factory.platform("GOG", PlatformType.Generic)

    response = admin_client.post(
        "/admin/apps/new",
        data=_new_app_form(studio, steam, gog, **{"platforms[0][platform_id]": "9999"}),
    )

    assert response.status_code == 400
    assert "Unknown platform 9999" in response.text
    assert db.query(App).count() == 0
    assert db.query(AppPlatform).count() == 0


def test_new_platform_release_offers_missing_platforms_only(admin_client, db, factory):
    studio = factory.studio()
    steam = factory.platform("Steam", PlatformType.Steam)
    gog = factory.platform("GOG", PlatformType.Generic)
    app = factory.app("Star Hopper", studio)
    factory.app_platform(app, steam)

    page = admin_client.get(f"/admin/apps/{app.id}/new-platform")
    assert f'value="{gog.id}"' in page.text
    assert f'<option value="{steam.id}"' not in page.text

    response = admin_client.post(
        f"/admin/apps/{app.id}/new-platform", data={"platform_id": str(steam.id), "release_state": "Released"}
    )
    assert response.status_code == 400

    response = admin_client.post(
        f"/admin/apps/{app.id}/new-platform",
        data={
            "platform_id": str(gog.id),
            "release_state": "Unreleased",
            "is_free_to_play": "on",
            "links[0][url]": "https://gog.example/star-hopper",
            "links[0][title]": "GOG page",
        },
        follow_redirects=False,
    )
    assert response.status_code == 303
    release = db.query(AppPlatform).filter_by(app_id=app.id, platform_id=gog.id).one()
    assert release.is_free_to_play is True
    assert [link.title for link in release.links] == ["GOG page"]


def test_edit_and_remove_app(admin_client, db, factory):
    studio = factory.studio()
    other = factory.studio("Moth Works")
    steam = factory.platform()
    app = factory.app("Star Hopper", studio)
    release = factory.app_platform(app, steam)

    response = admin_client.post(
        f"/admin/apps/{app.id}/edit",
        data={"intent": "save", "name": "Star Hopper DX", "type": "Game", "studio_id": str(other.id)},
        follow_redirects=False,
    )
    assert response.status_code == 303
    db.refresh(app)
    assert (app.name, app.studio_id) == ("Star Hopper DX", other.id)

    admin_client.post(f"/admin/apps/{app.id}/platforms/{release.id}/delete")
    assert db.query(AppPlatform).count() == 0

    response = admin_client.post(f"/admin/apps/{app.id}/edit", data={"intent": "remove"}, follow_redirects=False)
    assert response.headers["location"] == "/admin/apps"
    assert db.query(App).count() == 0


def test_app_pages_render(admin_client, factory):
    studio = factory.studio()
    steam = factory.platform()
    app = factory.app("Star Hopper", studio)
    factory.app_platform(app, steam, links=[("https://store.steampowered.com/app/1", "Store")])

    assert "Star Hopper" in admin_client.get("/admin/apps").text
    assert "Store" in admin_client.get(f"/admin/apps/{app.id}").text
    assert admin_client.get(f"/admin/apps/{app.id}/edit").status_code == 200
    assert admin_client.get("/admin/apps/new").status_code == 200
