import pytest

from conftest import API, auth_header


@pytest.fixture
def admin_token(register_user):
    return register_user("admin@x.com", "admin123", role="admin", full_name="Admin User")["tokens"]["accessToken"]


@pytest.fixture
def student(register_user):
    return register_user("a@x.com", "secret1", role="student", full_name="Ada Green", school="EchoPind Academy")


def test_get_profile(client, student):
    response = client.get(f"{API}/user/profile", headers=auth_header(student["tokens"]["accessToken"]))

    assert response.status_code == 200
    user = response.json()["user"]
    assert user["email"] == "a@x.com"
    assert user["school"] == "EchoPind Academy"


def test_update_profile_fields(client, student):
    response = client.put(
        f"{API}/user/profile",
        headers=auth_header(student["tokens"]["accessToken"]),
        json={
            "fullName": "Ada Lovelace Green",
            "phone": "555-0100",
            "dateOfBirth": "2008-04-22",
            "studentId": "S-42",
            "grade": "Grade 11",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Profile updated successfully"
    assert body["user"]["fullName"] == "Ada Lovelace Green"
    assert body["user"]["dateOfBirth"] == "2008-04-22"
    assert body["user"]["studentId"] == "S-42"
    # Untouched fields survive
    assert body["user"]["school"] == "EchoPind Academy"


def test_update_profile_cannot_change_role_or_status(client, student):
    access = student["tokens"]["accessToken"]

    response = client.put(
        f"{API}/user/profile",
        headers=auth_header(access),
        json={"role": "admin", "isActive": False, "grade": "Grade 12"},
    )

    assert response.status_code == 200
    assert response.json()["user"]["role"] == "student"
    assert response.json()["user"]["isActive"] is True


def test_update_profile_email_change_and_duplicates(client, student, register_user):
    register_user("b@x.com")
    access = student["tokens"]["accessToken"]

    taken = client.put(f"{API}/user/profile", headers=auth_header(access), json={"email": "B@X.com"})
    assert taken.status_code == 400
    assert taken.json() == {"error": "DuplicateResource", "message": "Email already exists"}

    same = client.put(f"{API}/user/profile", headers=auth_header(access), json={"email": "A@x.com"})
    assert same.status_code == 200

    moved = client.put(f"{API}/user/profile", headers=auth_header(access), json={"email": "New@X.com"})
    assert moved.status_code == 200
    assert moved.json()["user"]["email"] == "new@x.com"

    relogin = client.post(f"{API}/auth/login", json={"email": "new@x.com", "password": "secret1"})
    assert relogin.status_code == 200


def test_list_users_requires_admin(client, student):
    anonymous = client.get(f"{API}/user/all")
    assert anonymous.status_code == 401
    assert anonymous.json()["error"] == "Unauthenticated"

    forbidden = client.get(f"{API}/user/all", headers=auth_header(student["tokens"]["accessToken"]))
    assert forbidden.status_code == 403
    assert forbidden.json() == {"error": "Forbidden", "message": "Insufficient permissions"}


def test_list_users_paginates_and_filters(client, admin_token, student, register_user):
    register_user("teacher@x.com", role="teacher", full_name="Prof. Green")
    register_user("c@x.com", full_name="Cody Brown", school="Green Valley School")

    page = client.get(f"{API}/user/all", params={"page": 1, "limit": 2}, headers=auth_header(admin_token))
    assert page.status_code == 200
    body = page.json()
    assert len(body["users"]) == 2
    assert body["pagination"] == {
        "currentPage": 1,
        "totalPages": 2,
        "totalUsers": 4,
        "hasNext": True,
        "hasPrev": False,
    }
    # Newest first
    assert body["users"][0]["email"] == "c@x.com"

    teachers = client.get(f"{API}/user/all", params={"role": "teacher"}, headers=auth_header(admin_token))
    assert [user["email"] for user in teachers.json()["users"]] == ["teacher@x.com"]

    search = client.get(f"{API}/user/all", params={"search": "GREEN"}, headers=auth_header(admin_token))
    emails = {user["email"] for user in search.json()["users"]}
    assert emails == {"a@x.com", "teacher@x.com", "c@x.com"}

    unknown_role = client.get(f"{API}/user/all", params={"role": "wizard"}, headers=auth_header(admin_token))
    assert unknown_role.json()["pagination"]["totalUsers"] == 4


def test_deactivation_locks_out_live_tokens(client, admin_token, student):
    access, refresh = student["tokens"]["accessToken"], student["tokens"]["refreshToken"]
    user_id = student["user"]["id"]

    response = client.put(
        f"{API}/user/{user_id}/status", headers=auth_header(admin_token), json={"isActive": False})
    assert response.status_code == 200
    assert response.json()["message"] == "User deactivated successfully"
    assert response.json()["user"]["isActive"] is False

    # The access token has not expired, but the live lookup now rejects it
    profile = client.get(f"{API}/user/profile", headers=auth_header(access))
    assert profile.status_code == 401
    assert profile.json()["message"] == "Invalid token or user not found"

    assert client.post(f"{API}/auth/refresh", json={"refreshToken": refresh}).status_code == 401

    login = client.post(f"{API}/auth/login", json={"email": "a@x.com", "password": "secret1"})
    assert login.status_code == 401
    assert login.json()["message"] == "Account is deactivated"

    reactivated = client.put(
        f"{API}/user/{user_id}/status", headers=auth_header(admin_token), json={"isActive": True})
    assert reactivated.json()["message"] == "User activated successfully"
    # Tokens cleared on deactivation stay dead
    assert client.post(f"{API}/auth/refresh", json={"refreshToken": refresh}).status_code == 401
    assert client.post(f"{API}/auth/login", json={"email": "a@x.com", "password": "secret1"}).status_code == 200


@pytest.mark.parametrize("payload", [{"isActive": "false"}, {"isActive": 0}, {}])
def test_status_update_requires_boolean(client, admin_token, student, payload):
    response = client.put(
        f"{API}/user/{student['user']['id']}/status", headers=auth_header(admin_token), json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


def test_status_update_unknown_user_is_404(client, admin_token):
    response = client.put(f"{API}/user/missing/status", headers=auth_header(admin_token), json={"isActive": False})

    assert response.status_code == 404
    assert response.json() == {"error": "NotFound", "message": "User not found"}


def test_status_update_is_admin_only(client, student, register_user):
    teacher = register_user("teacher@x.com", role="teacher")

    response = client.put(
        f"{API}/user/{student['user']['id']}/status",
        headers=auth_header(teacher["tokens"]["accessToken"]),
        json={"isActive": False},
    )

    assert response.status_code == 403


def test_delete_account(client, student):
    access = student["tokens"]["accessToken"]

    missing = client.request("DELETE", f"{API}/user/account", headers=auth_header(access), json={})
    assert missing.status_code == 400

    wrong = client.request("DELETE", f"{API}/user/account", headers=auth_header(access), json={"password": "nope123"})
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Unauthenticated", "message": "Invalid password"}

    deleted = client.request("DELETE", f"{API}/user/account", headers=auth_header(access), json={"password": "secret1"})
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Account deleted successfully"}

    assert client.get(f"{API}/user/profile", headers=auth_header(access)).status_code == 401
    login = client.post(f"{API}/auth/login", json={"email": "a@x.com", "password": "secret1"})
    assert login.status_code == 401
    assert client.post(
        f"{API}/auth/refresh", json={"refreshToken": student["tokens"]["refreshToken"]}).status_code == 401


def test_list_users_rejects_out_of_range_page(client, admin_token):
    response = client.get(f"{API}/user/all", params={"page": 10**20}, headers=auth_header(admin_token))

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"
    assert "page" in response.json()["message"]


def test_list_users_far_page_is_empty(client, admin_token):
    response = client.get(f"{API}/user/all", params={"page": 1_000_000, "limit": 100}, headers=auth_header(admin_token))

    assert response.status_code == 200
    assert response.json()["users"] == []
    assert response.json()["pagination"]["hasPrev"] is True


def test_list_users_accepts_user_type_filter(client, admin_token, student, register_user):
    register_user("teacher@x.com", role="teacher")

    response = client.get(f"{API}/user/all", params={"userType": "teacher"}, headers=auth_header(admin_token))

    assert [user["email"] for user in response.json()["users"]] == ["teacher@x.com"]


@pytest.mark.parametrize("term", ["%", "_", "\\"])
def test_list_users_search_treats_wildcards_literally(client, admin_token, student, term):
    response = client.get(f"{API}/user/all", params={"search": term}, headers=auth_header(admin_token))

    assert response.status_code == 200
    assert response.json()["users"] == []
