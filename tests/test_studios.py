from salesadmin.models import Platform, Studio, StudioLink, StudioMember


def test_create_studio_with_links(admin_client, db):
    response = admin_client.post(
        "/admin/studios/new",
        data={
            "name": "Pixel Forge",
            "comment": "Indie team",
            "links[0][url]": "https://pixelforge.example",
            "links[0][title]": "Website",
            "links[0][type]": "Website",
            "links[1][url]": "",
            "links[1][title]": "",
        },
        follow_redirects=False,
    )

    assert response.status_code == 303
    studio = db.query(Studio).one()
    assert [(link.url, link.title) for link in studio.links] == [("https://pixelforge.example", "Website")]


def test_studio_name_is_unique(admin_client, factory):
    factory.studio("Pixel Forge")

    response = admin_client.post("/admin/studios/new", data={"name": "Pixel Forge"})

    assert response.status_code == 400
    assert "A studio with this name already exists" in response.text


def test_add_member_as_main_contact(admin_client, db, factory):
    studio = factory.studio()
    user = factory.user("Kim", "kim@forge.example")

    response = admin_client.post(
        f"/admin/studios/{studio.id}/members/new",
        data={"user_id": str(user.id), "position": "Producer", "set_as_main_contact": "on"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    member = db.query(StudioMember).one()
    db.refresh(studio)
    assert studio.main_contact_id == member.id
    assert member.position == "Producer"

    response = admin_client.post(f"/admin/studios/{studio.id}/members/new", data={"user_id": str(user.id)})
    assert response.status_code == 400
    assert "User is already a member of the studio" in response.text


def test_edit_studio_appends_links_and_sets_contact(admin_client, db, factory):
    studio = factory.studio()
    studio.links.append(StudioLink(url="https://old.example", title="Old"))
    db.commit()
    kim = factory.member(studio, factory.user("Kim"))

    response = admin_client.post(
        f"/admin/studios/{studio.id}/edit",
        data={
            "intent": "save",
            "name": "Pixel Forge Games",
            "main_contact_id": str(kim.id),
            "links[0][url]": "https://press.example",
            "links[0][title]": "Press",
        },
        follow_redirects=False,
    )

    assert response.status_code == 303
    db.refresh(studio)
    assert studio.name == "Pixel Forge Games"
    assert studio.main_contact_id == kim.id
    assert [link.title for link in studio.links] == ["Old", "Press"]


def test_main_contact_must_be_member(admin_client, factory):
    studio = factory.studio()
    other = factory.studio("Moth Works")
    outsider = factory.member(other, factory.user("Lee"))

    response = admin_client.post(
        f"/admin/studios/{studio.id}/edit",
        data={"intent": "save", "name": studio.name, "main_contact_id": str(outsider.id)},
    )

    assert response.status_code == 400
    assert "Main contact must be a member of the studio" in response.text


def test_remove_studio(admin_client, db, factory):
    studio = factory.studio()
    factory.app("Star Hopper", studio)

    response = admin_client.post(f"/admin/studios/{studio.id}/edit", data={"intent": "remove"}, follow_redirects=False)

    assert response.headers["location"] == "/admin/studios"
    assert db.query(Studio).count() == 0


def test_studio_pages_render(admin_client, factory):
    studio = factory.studio()
    factory.member(studio, factory.user("Kim"), position="Producer", main_contact=True)

    assert "Pixel Forge" in admin_client.get("/admin/studios").text
    detail = admin_client.get(f"/admin/studios/{studio.id}")
    assert "Producer" in detail.text
    assert "Main contact" in detail.text
    assert admin_client.get(f"/admin/studios/{studio.id}/edit").status_code == 200
    assert admin_client.get("/admin/studios/999").status_code == 404


def test_platform_crud(admin_client, db):
    response = admin_client.post(
        "/admin/platforms/new", data={"name": "Steam", "type": "Steam"}, follow_redirects=False
    )
    assert response.status_code == 303
    platform = db.query(Platform).one()

    response = admin_client.post("/admin/platforms/new", data={"name": "Steam", "type": "Generic"})
    assert response.status_code == 400
    assert "A platform with this name already exists" in response.text

    response = admin_client.post(
        f"/admin/platforms/{platform.id}/edit",
        data={"intent": "save", "name": "Steam", "type": "Steam", "url": "https://store.steampowered.com"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    db.refresh(platform)
    assert platform.url == "https://store.steampowered.com"

    assert "Steam" in admin_client.get(f"/admin/platforms/{platform.id}").text

    admin_client.post(f"/admin/platforms/{platform.id}/edit", data={"intent": "remove"})
    assert db.query(Platform).count() == 0
