from __future__ import annotations

import json
import logging
from pathlib import Path
from urllib.parse import urlencode

from fastapi import FastAPI, Request, Form
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlmodel import Session

from .config import APP_NAME, SEED_SAMPLE_MENU, SLOT_CAPACITY
from .db import init_db, get_session
from .models import User
from .auth import (
    authenticate,
    change_password,
    clear_login_cookie,
    ensure_bootstrap_manager,
    get_user_id_from_request,
    register_student,
    request_password_reset,
    reset_password,
    send_otp,
    set_login_cookie,
    verify_otp,
)
from .analytics import PERIODS, orders_csv, summarize
from .cart import load_cart, save_cart
from .errors import CanteenError
from .logging_setup import configure_logging
from .menu import (
    COMMON_ALLERGENS,
    CUISINES,
    add_menu_item,
    categories,
    delete_menu_item,
    get_menu_item,
    list_menu,
    seed_sample_menu,
    toggle_availability,
    update_menu_item,
)
from .notifications import list_for_user, mark_all_read, mark_read, unread_count
from .orders import (
    ACTIVE,
    NEXT_STATUS,
    SERVED,
    STATUSES,
    advance_status,
    bulk_advance,
    create_order,
    list_orders,
    status_counts,
    tax_breakdown,
    with_tax,
)
from .passwords import validate_password
from .reviews import add_review, reviewed_item_ids
from .slots import load_slots
from .utils import fmt_dt, now_local, rupees

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

app = FastAPI(title=APP_NAME)
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=BASE_DIR / "templates")
templates.env.globals.update(app_name=APP_NAME, fmt_dt=fmt_dt, rupees=rupees, with_tax=with_tax)

def flash(request: Request) -> dict | None:
    # simple flash via query params ?ok=... or ?err=...
    if request.query_params.get("ok"):
        return {"kind": "ok", "message": request.query_params["ok"]}
    if request.query_params.get("err"):
        return {"kind": "error", "message": request.query_params["err"]}
    return None

def redirect(path: str, ok: str | None = None, err: str | None = None, **params) -> RedirectResponse:
    query = {k: v for k, v in params.items() if v is not None}
    if ok:
        query["ok"] = ok
    if err:
        query["err"] = err
    url = f"{path}?{urlencode(query)}" if query else path
    return RedirectResponse(url, status_code=302)

def login_required() -> RedirectResponse:
    return redirect("/login", err="Please log in")

def manager_required() -> RedirectResponse:
    return redirect("/", err="Manager access required")

@app.on_event("startup")
def on_startup() -> None:
    configure_logging()
    init_db()
    with get_session() as session:
        ensure_bootstrap_manager(session)
        if SEED_SAMPLE_MENU:
            seeded = seed_sample_menu(session)
            if seeded:
                logger.info("Seeded %s sample menu items", seeded)

def get_current_user(request: Request) -> User | None:
    uid = get_user_id_from_request(request)
    if not uid:
        return None
    with get_session() as session:
        return session.get(User, uid)

def page(request: Request, template: str, user: User | None, session: Session | None = None, **context) -> HTMLResponse:
    unread = 0
    if user and session is not None:
        unread = unread_count(session, user.id)
    elif user:
        with get_session() as own_session:
            unread = unread_count(own_session, user.id)
    return templates.TemplateResponse(request, template, {
        "current_user": user,
        "unread_count": unread,
        "flash": flash(request),
        **context,
    })

@app.get("/healthz")
def healthz():
    return {"status": "ok"}

# ---- Login, registration, verification ----

@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request):
    return page(request, "login.html", None)

@app.post("/login")
def login(request: Request, email: str = Form(...), password: str = Form(...)):
    with get_session() as session:
        try:
            user = authenticate(session, email, password)
        except CanteenError as exc:
            return redirect("/login", err=exc.message)
        target = "/manager" if user.is_manager else "/"
        response = redirect(target)
        set_login_cookie(response, user.id)
    return response

@app.get("/logout")
def logout():
    response = redirect("/login", ok="Logged out")
    clear_login_cookie(response)
    return response

@app.get("/register", response_class=HTMLResponse)
def register_page(request: Request):
    return page(request, "register.html", None)

@app.post("/register")
def register(
    request: Request,
    full_name: str = Form(...),
    email: str = Form(...),
    student_id: str = Form(""),
    password: str = Form(...),
    confirm_password: str = Form(...),
):
    if password != confirm_password:
        return redirect("/register", err="Passwords do not match")
    with get_session() as session:
        try:
            user = register_student(session, full_name, email, password, student_id=student_id)
            send_otp(session, user.email)
        except CanteenError as exc:
            return redirect("/register", err=exc.message)
        email = user.email
    return redirect("/verify", ok="We sent a 6-digit code to your email", email=email)

@app.get("/verify", response_class=HTMLResponse)
def verify_page(request: Request, email: str = ""):
    return page(request, "verify.html", None, email=email)

@app.post("/verify")
def verify(request: Request, email: str = Form(...), code: str = Form(...)):
    with get_session() as session:
        if not verify_otp(session, email, code):
            return redirect("/verify", err="Invalid or expired code", email=email)
    return redirect("/login", ok="Email verified, you can log in now")

@app.post("/verify/resend")
def verify_resend(request: Request, email: str = Form(...)):
    with get_session() as session:
        try:
            send_otp(session, email)
        except CanteenError as exc:
            return redirect("/verify", err=exc.message, email=email)
    return redirect("/verify", ok="A new code is on its way", email=email)

# ---- Password reset / change ----

@app.get("/forgot-password", response_class=HTMLResponse)
def forgot_password_page(request: Request):
    return page(request, "forgot_password.html", None)

@app.post("/forgot-password")
def forgot_password(request: Request, email: str = Form(...)):
    with get_session() as session:
        request_password_reset(session, email, str(request.base_url))
    return redirect("/login", ok="If that account exists, a reset link has been sent")

@app.get("/reset-password", response_class=HTMLResponse)
def reset_password_page(request: Request, token: str = ""):
    if not token:
        return redirect("/forgot-password", err="Reset link is missing its token")
    return page(request, "reset_password.html", None, token=token)

@app.post("/reset-password")
def reset_password_submit(
    request: Request,
    token: str = Form(...),
    new_password: str = Form(...),
    confirm_password: str = Form(...),
):
    if new_password != confirm_password:
        return redirect("/reset-password", err="New passwords do not match", token=token)
    with get_session() as session:
        try:
            reset_password(session, token, new_password)
        except CanteenError as exc:
            return redirect("/reset-password", err=exc.message, token=token)
    return redirect("/login", ok="Password updated, please log in")

@app.get("/change-password", response_class=HTMLResponse)
def change_password_page(request: Request):
    user = get_current_user(request)
    if not user:
        return login_required()
    return page(request, "change_password.html", user)

@app.post("/change-password")
def change_password_submit(
    request: Request,
    current_password: str = Form(...),
    new_password: str = Form(...),
    confirm_password: str = Form(...),
):
    user = get_current_user(request)
    if not user:
        return login_required()
    if new_password != confirm_password:
        return redirect("/change-password", err="New passwords do not match")
    with get_session() as session:
        try:
            change_password(session, user.id, current_password, new_password)
        except CanteenError as exc:
            return redirect("/change-password", err=exc.message)
    return redirect("/", ok="Password changed successfully")

@app.get("/password-strength")
def password_strength(password: str = ""):
    result = validate_password(password)
    return {
        "is_valid": result.is_valid,
        "strength": result.strength,
        "score": result.score,
        "issues": result.issues,
        "suggestions": result.suggestions,
    }

# ---- Student: menu and cart ----

@app.get("/", response_class=HTMLResponse)
def menu_page(request: Request, q: str = "", category: str = "", veg: bool = False):
    user = get_current_user(request)
    if not user:
        return RedirectResponse("/login", status_code=302)
    if user.is_manager:
        return RedirectResponse("/manager", status_code=302)

    with get_session() as session:
        items = list_menu(session, search=q or None, category=category or None, veg_only=veg)
        cart = load_cart(request, session)
        return page(
            request, "menu.html", user, session=session,
            items=items,
            categories=categories(session),
            q=q, category=category, veg=veg,
            cart=cart,
        )

@app.post("/cart/add")
def cart_add(request: Request, item_id: int = Form(...), quantity: int = Form(1)):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        cart = load_cart(request, session)
        try:
            item = get_menu_item(session, item_id)
            cart.add(item, quantity)
        except CanteenError as exc:
            return redirect("/", err=exc.message)
        response = redirect("/", ok=f"Added {item.name} to cart")
    save_cart(response, cart)
    return response

@app.post("/cart/update")
def cart_update(request: Request, item_id: int = Form(...), quantity: int = Form(...)):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        cart = load_cart(request, session)
    cart.set_quantity(item_id, quantity)
    response = redirect("/cart")
    save_cart(response, cart)
    return response

@app.post("/cart/remove")
def cart_remove(request: Request, item_id: int = Form(...)):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        cart = load_cart(request, session)
    cart.remove(item_id)
    response = redirect("/cart", ok="Item removed")
    save_cart(response, cart)
    return response

@app.post("/cart/clear")
def cart_clear(request: Request):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        cart = load_cart(request, session)
    cart.clear()
    response = redirect("/cart", ok="Cart cleared")
    save_cart(response, cart)
    return response

@app.get("/cart", response_class=HTMLResponse)
def cart_page(request: Request):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        cart = load_cart(request, session)
        slots = [s for s in load_slots(session, now_local()) if s.available]
        return page(
            request, "cart.html", user, session=session,
            cart=cart,
            totals=tax_breakdown(cart.total()),
            slots=slots,
        )

@app.post("/checkout")
def checkout(request: Request, scheduled_time: str = Form(...), special_instructions: str = Form("")):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        cart = load_cart(request, session)
        try:
            order = create_order(session, user.id, cart, scheduled_time, special_instructions)
        except CanteenError as exc:
            return redirect("/cart", err=exc.message)
        response = redirect("/orders", ok=f"Order placed, your token is {order.token}")
    save_cart(response, cart)
    return response

@app.get("/orders", response_class=HTMLResponse)
def orders_page(request: Request):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        orders = list_orders(session, user_id=user.id)
        reviewed = reviewed_item_ids(session, user.id)
        return page(
            request, "orders.html", user, session=session,
            active=[o for o in orders if o.status in ACTIVE],
            past=[o for o in orders if o.status not in ACTIVE],
            reviewed=reviewed,
            served=SERVED,
        )

@app.post("/reviews")
def review_submit(
    request: Request,
    menu_item_id: int = Form(...),
    rating: int = Form(...),
    comment: str = Form(""),
):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        try:
            add_review(session, user.id, user.full_name, menu_item_id, rating, comment)
        except CanteenError as exc:
            return redirect("/orders", err=exc.message)
    return redirect("/orders", ok="Thanks for your review")

# ---- Notifications ----

@app.get("/notifications", response_class=HTMLResponse)
def notifications_page(request: Request):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        notes = list_for_user(session, user.id)
        return page(request, "notifications.html", user, session=session, notifications=notes)

@app.post("/notifications/{notification_id}/read")
def notification_read(request: Request, notification_id: int):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        if not mark_read(session, user.id, notification_id):
            return redirect("/notifications", err="Notification not found")
    return redirect("/notifications")

@app.post("/notifications/read-all")
def notifications_read_all(request: Request):
    user = get_current_user(request)
    if not user:
        return login_required()
    with get_session() as session:
        mark_all_read(session, user.id)
    return redirect("/notifications", ok="All caught up")

# ---- Manager: dashboard and orders ----

@app.get("/manager", response_class=HTMLResponse)
def manager_dashboard(request: Request):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    today = now_local().date()
    with get_session() as session:
        todays = list_orders(session, service_date=today)
        slots = load_slots(session, now_local())
        return page(
            request, "manager_dashboard.html", user, session=session,
            counts=status_counts(session),
            todays=todays,
            revenue_today=round(sum(with_tax(o.total_amount) for o in todays if o.status == SERVED), 2),
            busy_slots=[s for s in slots if s.booked],
            slot_capacity=SLOT_CAPACITY,
            unavailable_items=[i for i in list_menu(session) if not i.is_available],
        )

@app.get("/manager/orders", response_class=HTMLResponse)
def manager_orders(request: Request, status: str = "", q: str = ""):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    with get_session() as session:
        orders = list_orders(session, status=status or None, search=q or None)
        return page(
            request, "manager_orders.html", user, session=session,
            orders=orders,
            counts=status_counts(session),
            statuses=STATUSES,
            next_status=NEXT_STATUS,
            status=status, q=q,
        )

@app.post("/manager/orders/{order_id}/status")
def manager_order_status(request: Request, order_id: int, status: str = Form(...)):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    with get_session() as session:
        try:
            order = advance_status(session, order_id, status)
        except CanteenError as exc:
            return redirect("/manager/orders", err=exc.message)
        token = order.token
    return redirect("/manager/orders", ok=f"Order {token} is now {status}")

@app.post("/manager/orders/bulk")
def manager_orders_bulk(request: Request, status: str = Form(...), filter_status: str = Form(""), q: str = Form("")):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    with get_session() as session:
        orders = list_orders(session, status=filter_status or None, search=q or None)
        try:
            advanced = bulk_advance(session, orders, status)
        except CanteenError as exc:
            return redirect("/manager/orders", err=exc.message)
    return redirect("/manager/orders", ok=f"{len(advanced)} order(s) moved to {status}")

@app.get("/manager/orders/export.csv")
def manager_orders_export(request: Request):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    with get_session() as session:
        data = orders_csv(list_orders(session)).encode("utf-8")
    return Response(content=data, media_type="text/csv", headers={
        "Content-Disposition": 'attachment; filename="orders.csv"'
    })

# ---- Manager: inventory ----

def _menu_fields(
    name: str, description: str, price: float, category: str, image: str, is_veg: bool,
    cuisine: str, spice_level: int, allergens: list[str], ingredients: str,
    preparation_time: int, calories: int, protein: int, carbs: int, fat: int,
) -> dict:
    return {
        "name": name.strip(),
        "description": description.strip(),
        "price": price,
        "category": category.strip(),
        "image": image.strip() or None,
        "is_veg": is_veg,
        "cuisine": cuisine.strip(),
        "spice_level": spice_level,
        "allergens": [a for a in allergens if a],
        "ingredients": [i.strip() for i in ingredients.split(",") if i.strip()],
        "preparation_time": preparation_time,
        "nutritional_info": {"calories": calories, "protein": protein, "carbs": carbs, "fat": fat},
    }

@app.get("/manager/inventory", response_class=HTMLResponse)
def manager_inventory(request: Request, q: str = "", category: str = ""):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    with get_session() as session:
        items = list_menu(session, search=q or None, category=category or None)
        return page(
            request, "manager_inventory.html", user, session=session,
            items=items,
            categories=categories(session),
            cuisines=CUISINES,
            allergens=COMMON_ALLERGENS,
            q=q, category=category,
        )

@app.post("/manager/menu/new")
def manager_menu_new(
    request: Request,
    name: str = Form(...),
    description: str = Form(""),
    price: float = Form(...),
    category: str = Form(...),
    image: str = Form(""),
    is_veg: bool = Form(False),
    cuisine: str = Form(""),
    spice_level: int = Form(0),
    allergens: list[str] = Form([]),
    ingredients: str = Form(""),
    preparation_time: int = Form(10),
    calories: int = Form(0),
    protein: int = Form(0),
    carbs: int = Form(0),
    fat: int = Form(0),
):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    fields = _menu_fields(name, description, price, category, image, is_veg, cuisine, spice_level,
                          allergens, ingredients, preparation_time, calories, protein, carbs, fat)
    with get_session() as session:
        try:
            add_menu_item(session, **fields)
        except CanteenError as exc:
            return redirect("/manager/inventory", err=exc.message)
    return redirect("/manager/inventory", ok="Menu item added")

@app.post("/manager/menu/{item_id}/edit")
def manager_menu_edit(
    request: Request,
    item_id: int,
    name: str = Form(...),
    description: str = Form(""),
    price: float = Form(...),
    category: str = Form(...),
    image: str = Form(""),
    is_veg: bool = Form(False),
    cuisine: str = Form(""),
    spice_level: int = Form(0),
    allergens: list[str] = Form([]),
    ingredients: str = Form(""),
    preparation_time: int = Form(10),
    calories: int = Form(0),
    protein: int = Form(0),
    carbs: int = Form(0),
    fat: int = Form(0),
):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    fields = _menu_fields(name, description, price, category, image, is_veg, cuisine, spice_level,
                          allergens, ingredients, preparation_time, calories, protein, carbs, fat)
    with get_session() as session:
        try:
            update_menu_item(session, item_id, **fields)
        except CanteenError as exc:
            return redirect("/manager/inventory", err=exc.message)
    return redirect("/manager/inventory", ok="Menu item updated")

@app.post("/manager/menu/{item_id}/toggle")
def manager_menu_toggle(request: Request, item_id: int):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    with get_session() as session:
        try:
            toggle_availability(session, item_id)
        except CanteenError as exc:
            return redirect("/manager/inventory", err=exc.message)
    return redirect("/manager/inventory", ok="Availability updated")

@app.post("/manager/menu/{item_id}/delete")
def manager_menu_delete(request: Request, item_id: int):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    with get_session() as session:
        try:
            delete_menu_item(session, item_id)
        except CanteenError as exc:
            return redirect("/manager/inventory", err=exc.message)
    return redirect("/manager/inventory", ok="Menu item deleted")

# ---- Manager: analytics ----

@app.get("/manager/analytics", response_class=HTMLResponse)
def manager_analytics(request: Request, period: str = "7d"):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    if period not in PERIODS:
        period = "7d"
    with get_session() as session:
        report = summarize(list_orders(session), now_local().date(), period)
    return page(request, "analytics.html", user, report=report, periods=PERIODS)

@app.get("/manager/analytics/export.json")
def manager_analytics_export(request: Request, period: str = "7d"):
    user = get_current_user(request)
    if not user:
        return login_required()
    if not user.is_manager:
        return manager_required()
    if period not in PERIODS:
        period = "7d"
    today = now_local().date()
    with get_session() as session:
        report = summarize(list_orders(session), today, period)
    return Response(content=json.dumps(report, indent=2), media_type="application/json", headers={
        "Content-Disposition": f'attachment; filename="analytics-report-{today.isoformat()}.json"'
    })
