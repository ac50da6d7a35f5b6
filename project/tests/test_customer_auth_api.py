# tests/test_customer_auth_api.py

from flowershop.utils.session import CUSTOMER_COOKIE


def session_cookie(response) -> str:
    header = response.headers.get("set-cookie", "")
    name, _, rest = header.partition("=")
    assert name == CUSTOMER_COOKIE
    return rest.split(";", 1)[0]


def register(client, fake_email, email, password="gizli123"):
    start = client.post("/api/customers/register/start", json={
        "email": email, "name": "Zeynep Kaya", "phone": "05321234567", "password": password,
    })
    assert start.status_code == 200, start.text
    otp = start.json()
    assert otp["otpRequired"] is True
    assert otp["purpose"] == "register"

    code = fake_email.last_code(email, "register")
    verify = client.post("/api/customers/register/verify", json={"otpId": otp["otpId"], "email": email, "code": code})
    assert verify.status_code == 200, verify.text
    return verify


def test_register_sets_verified_session(client, fake_email, new_email):
    email = new_email()
    response = register(client, fake_email, email)

    customer = response.json()["customer"]
    assert customer["email"] == email
    assert customer["emailVerified"] is True
    assert "password" not in customer

    token = session_cookie(response)
    session = client.get("/api/auth/session", headers={"Cookie": f"{CUSTOMER_COOKIE}={token}"})
    assert session.json()["customer"]["id"] == customer["id"]


def test_session_without_cookie_is_empty(client):
    assert client.get("/api/auth/session").json() == {"customer": None}


def test_duplicate_registration(client, fake_email, new_email):
    email = new_email()
    register(client, fake_email, email)

    again = client.post("/api/customers/register/start", json={
        "email": email, "name": "X", "phone": "1", "password": "gizli123",
    })
    assert again.status_code == 400


def test_register_rolls_back_when_email_fails(client, fake_email, new_email):
    email = new_email()
    fake_email.fail_otp = True
    payload = {"email": email, "name": "Ali", "phone": "05320000000", "password": "gizli123"}

    assert client.post("/api/customers/register/start", json=payload).status_code == 400

    fake_email.fail_otp = False
    # адрес снова свободен
    assert client.post("/api/customers/register/start", json=payload).status_code == 200


def test_login_flow_with_wrong_code_and_cooldown(client, fake_email, new_email):
    email = new_email()
    register(client, fake_email, email)

    bad_password = client.post("/api/customers/login/start", json={"email": email, "password": "yanlis"})
    assert bad_password.status_code == 401

    start = client.post("/api/customers/login/start", json={"email": email.upper(), "password": "gizli123"})
    assert start.status_code == 200
    otp_id = start.json()["otpId"]

    cooldown = client.post("/api/customers/login/start", json={"email": email, "password": "gizli123"})
    assert cooldown.status_code == 429
    assert cooldown.json()["otpId"] == otp_id
    assert cooldown.json()["success"] is False

    code = fake_email.last_code(email, "login")
    wrong = "000000" if code != "000000" else "111111"
    assert client.post("/api/customers/login/verify", json={"otpId": otp_id, "email": email, "code": wrong}).status_code == 401

    verify = client.post("/api/customers/login/verify", json={"otpId": otp_id, "email": email, "code": code})
    assert verify.status_code == 200
    assert verify.json()["customer"]["email"] == email
    assert session_cookie(verify)

    reused = client.post("/api/customers/login/verify", json={"otpId": otp_id, "email": email, "code": code})
    assert reused.status_code == 400


def test_too_many_attempts(client, fake_email, new_email):
    email = new_email()
    register(client, fake_email, email)
    otp_id = client.post("/api/customers/login/start", json={"email": email, "password": "gizli123"}).json()["otpId"]
    code = fake_email.last_code(email, "login")
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(5):
        response = client.post("/api/customers/login/verify", json={"otpId": otp_id, "email": email, "code": wrong})
        assert response.status_code == 401

    locked = client.post("/api/customers/login/verify", json={"otpId": otp_id, "email": email, "code": code})
    assert locked.status_code == 429


def test_register_code_does_not_work_for_login(client, fake_email, new_email):
    email = new_email()
    register(client, fake_email, email)
    otp_id = client.post("/api/customers/login/start", json={"email": email, "password": "gizli123"}).json()["otpId"]

    register_code = fake_email.last_code(email, "register")
    login_code = fake_email.last_code(email, "login")
    if register_code != login_code:
        response = client.post("/api/customers/login/verify", json={"otpId": otp_id, "email": email, "code": register_code})
        assert response.status_code == 401


def test_password_reset(client, fake_email, new_email):
    email = new_email()
    register(client, fake_email, email)

    unknown = client.post("/api/customers/password-reset/start", json={"email": new_email()})
    known = client.post("/api/customers/password-reset/start", json={"email": email})
    assert unknown.status_code == known.status_code == 200
    assert unknown.json()["message"] == known.json()["message"]

    code = fake_email.last_code(email, "password-reset")
    short = client.post("/api/customers/password-reset/verify", json={
        "otpId": known.json()["otpId"], "email": email, "code": code, "newPassword": "123",
    })
    assert short.status_code == 400

    done = client.post("/api/customers/password-reset/verify", json={
        "otpId": known.json()["otpId"], "email": email, "code": code, "newPassword": "yeni-sifre",
    })
    assert done.status_code == 200

    assert client.post("/api/customers/login/start", json={"email": email, "password": "gizli123"}).status_code == 401
    assert client.post("/api/customers/login/start", json={"email": email, "password": "yeni-sifre"}).status_code == 200


def test_logout_clears_cookie(client):
    response = client.post("/api/auth/logout")
    assert response.json() == {"success": True}
    assert CUSTOMER_COOKIE in response.headers.get("set-cookie", "")


def test_change_password(client, fake_email, new_email):
    email = new_email()
    customer = register(client, fake_email, email).json()["customer"]

    wrong = client.put(f"/api/customers/{customer['id']}/password", json={
        "currentPassword": "yanlis", "newPassword": "yeni-sifre",
    })
    assert wrong.status_code == 401

    ok = client.put(f"/api/customers/{customer['id']}/password", json={
        "currentPassword": "gizli123", "newPassword": "yeni-sifre",
    })
    assert ok.status_code == 200
