from sqlmodel import select

from canteen.mailer import outbox
from canteen.models import MenuItem, Notification, Order, Review
from tests.factories import MANAGER_PASSWORD, STUDENT_PASSWORD, login, make_item


def test_startup_and_health(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

    paths = {route.path for route in client.app.routes}
    assert {"/checkout", "/manager/orders/{order_id}/status", "/manager/analytics/export.json"} <= paths


def test_pages_require_login(client):
    for path in ("/", "/cart", "/orders", "/notifications", "/manager"):
        response = client.get(path, follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"].startswith("/login")


def test_public_pages_render(client):
    for path in ("/login", "/register", "/forgot-password"):
        assert client.get(path).status_code == 200


def test_register_verify_login(client):
    response = client.post("/register", data={
        "full_name": "Meera Nair",
        "email": "meera@campus.test",
        "student_id": "",
        "password": STUDENT_PASSWORD,
        "confirm_password": STUDENT_PASSWORD,
    }, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].startswith("/verify")

    assert "err=" in login(client, "meera@campus.test", STUDENT_PASSWORD).headers["location"]

    code = outbox[-1]["body"].split("code is ")[1][:6]
    response = client.post("/verify", data={"email": "meera@campus.test", "code": code}, follow_redirects=False)
    assert response.headers["location"].startswith("/login?ok=")

    response = login(client, "meera@campus.test", STUDENT_PASSWORD)
    assert response.headers["location"] == "/"
    assert client.get("/").status_code == 200


def test_student_checkout_flow(client, session, student, biryani):
    lime = make_item(session, name="Fresh Lime Soda", price=60, category="Beverages", preparation_time=5)
    biryani_id, lime_id, student_id = biryani.id, lime.id, student.id
    login(client, student.email, STUDENT_PASSWORD)

    client.post("/cart/add", data={"item_id": biryani_id, "quantity": 2})
    client.post("/cart/add", data={"item_id": lime_id, "quantity": 1})
    cart_page = client.get("/cart")
    assert cart_page.status_code == 200
    assert "₹315.00" in cart_page.text
    assert "09:30" not in cart_page.text
    assert 'value="09:45"' in cart_page.text

    response = client.post("/checkout", data={"scheduled_time": "09:45", "special_instructions": "Less spicy"},
                           follow_redirects=False)
    assert response.status_code == 302
    assert "20261019-001" in response.headers["location"]

    session.expire_all()
    order = session.exec(select(Order)).one()
    assert order.user_id == student_id
    assert order.total_amount == 300
    assert order.special_instructions == "Less spicy"

    assert "Your cart is empty" in client.get("/cart").text
    assert "20261019-001" in client.get("/orders").text


def test_checkout_rejects_slot_inside_lead_time(client, session, student, dosa):
    dosa_id = dosa.id
    login(client, student.email, STUDENT_PASSWORD)
    client.post("/cart/add", data={"item_id": dosa_id})

    response = client.post("/checkout", data={"scheduled_time": "09:30"}, follow_redirects=False)

    assert response.headers["location"].startswith("/cart?err=")
    session.expire_all()
    assert session.exec(select(Order)).all() == []


def test_cart_update_and_remove(client, session, student, dosa):
    dosa_id = dosa.id
    login(client, student.email, STUDENT_PASSWORD)
    client.post("/cart/add", data={"item_id": dosa_id})

    client.post("/cart/update", data={"item_id": dosa_id, "quantity": 3})
    assert "₹189.00" in client.get("/cart").text  # 180 + tax

    client.post("/cart/update", data={"item_id": dosa_id, "quantity": 0})
    assert "Your cart is empty" in client.get("/cart").text


def test_students_cannot_reach_manager_pages(client, student):
    login(client, student.email, STUDENT_PASSWORD)
    for path in ("/manager", "/manager/orders", "/manager/inventory", "/manager/analytics"):
        response = client.get(path, follow_redirects=False)
        assert response.status_code == 302
        assert "Manager+access+required" in response.headers["location"]


def test_manager_moves_order_and_student_is_notified(client, session, student, manager, dosa):
    dosa_id, student_id, student_email = dosa.id, student.id, student.email

    login(client, student_email, STUDENT_PASSWORD)
    client.post("/cart/add", data={"item_id": dosa_id})
    client.post("/checkout", data={"scheduled_time": "10:00"})
    client.get("/logout")

    session.expire_all()
    order_id = session.exec(select(Order)).one().id

    assert login(client, manager.email, MANAGER_PASSWORD).headers["location"] == "/manager"
    assert client.get("/manager").status_code == 200
    assert "20261019-001" in client.get("/manager/orders").text

    skipped = client.post(f"/manager/orders/{order_id}/status", data={"status": "served"}, follow_redirects=False)
    assert "err=" in skipped.headers["location"]

    for status in ("preparing", "ready", "served"):
        response = client.post(f"/manager/orders/{order_id}/status", data={"status": status}, follow_redirects=False)
        assert "ok=" in response.headers["location"]

    session.expire_all()
    titles = [n.title for n in session.exec(
        select(Notification).where(Notification.user_id == student_id).order_by(Notification.id)
    ).all()]
    assert titles == ["Order Placed Successfully", "Order Preparing", "Order Ready", "Order Served"]


def test_served_order_can_be_reviewed_once_in_ui(client, session, student, manager, dosa):
    dosa_id = dosa.id
    login(client, student.email, STUDENT_PASSWORD)
    client.post("/cart/add", data={"item_id": dosa_id})
    client.post("/checkout", data={"scheduled_time": "10:00"})
    session.expire_all()
    order_id = session.exec(select(Order)).one().id

    login(client, manager.email, MANAGER_PASSWORD)
    for status in ("preparing", "ready", "served"):
        client.post(f"/manager/orders/{order_id}/status", data={"status": status})

    login(client, student.email, STUDENT_PASSWORD)
    assert "Rate this dish" in client.get("/orders").text
    response = client.post("/reviews", data={"menu_item_id": dosa_id, "rating": 4, "comment": "Nice"},
                           follow_redirects=False)
    assert "ok=" in response.headers["location"]
    assert "Rate this dish" not in client.get("/orders").text

    session.expire_all()
    assert session.exec(select(Review)).one().rating == 4


def test_notifications_mark_read(client, session, student, dosa):
    dosa_id = dosa.id
    login(client, student.email, STUDENT_PASSWORD)
    client.post("/cart/add", data={"item_id": dosa_id})
    client.post("/checkout", data={"scheduled_time": "10:00"})

    page = client.get("/notifications")
    assert "Order Placed Successfully" in page.text

    client.post("/notifications/read-all")
    session.expire_all()
    assert all(n.read for n in session.exec(select(Notification)).all())


def test_manager_inventory_crud(client, session, manager):
    login(client, manager.email, MANAGER_PASSWORD)

    response = client.post("/manager/menu/new", data={
        "name": "Veg Noodles",
        "price": "80",
        "category": "Main Course",
        "cuisine": "Chinese",
        "is_veg": "true",
        "allergens": ["soy", "gluten"],
        "ingredients": "Noodles, Cabbage, Soy Sauce",
        "preparation_time": "12",
    }, follow_redirects=False)
    assert "ok=" in response.headers["location"]

    session.expire_all()
    item = session.exec(select(MenuItem).where(MenuItem.name == "Veg Noodles")).one()
    assert item.allergens == ["soy", "gluten"]
    assert item.ingredients == ["Noodles", "Cabbage", "Soy Sauce"]
    item_id = item.id

    client.post(f"/manager/menu/{item_id}/toggle")
    assert "Veg Noodles" in client.get("/manager/inventory").text

    client.post(f"/manager/menu/{item_id}/delete")
    assert "Veg Noodles" not in client.get("/manager/inventory").text


def test_manager_exports(client, manager):
    login(client, manager.email, MANAGER_PASSWORD)

    analytics = client.get("/manager/analytics/export.json?period=30d")
    assert analytics.status_code == 200
    assert analytics.json()["period"] == "30d"
    assert "analytics-report-" in analytics.headers["content-disposition"]

    orders = client.get("/manager/orders/export.csv")
    assert orders.status_code == 200
    assert orders.text.startswith("order_id,token")

    assert client.get("/manager/analytics").status_code == 200


def test_password_reset_over_http(client, student):
    email = student.email
    client.post("/forgot-password", data={"email": email})
    link = outbox[-1]["body"].split("password: ")[1].split()[0]
    token = link.split("token=")[1]

    assert client.get(f"/reset-password?token={token}").status_code == 200
    response = client.post("/reset-password", data={
        "token": token, "new_password": "Fresh1234", "confirm_password": "Fresh1234",
    }, follow_redirects=False)
    assert response.headers["location"].startswith("/login?ok=")
    assert login(client, email, "Fresh1234").headers["location"] == "/"
