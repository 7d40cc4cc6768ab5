import logging
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from aggregation import AnnotatedExpense, annotate_expenses, paginate
from config import get_settings
from database import SessionLocal, create_schema
from periods import CURRENT_MONTH, Period, parse_bound, resolve_period
from schemas import (
    CategoryIn,
    CategoryOut,
    EmailCheckIn,
    ExpenseIn,
    ExpenseOut,
    SignInIn,
    SignUpIn,
    UserOut,
)
from services import (
    CategoryInUse,
    CategoryService,
    DuplicateRecord,
    ExpenseFilters,
    ExpenseService,
    MetricsService,
    UserService,
)
from sessions import issue_session_token, read_session_token

logging.basicConfig(level=logging.INFO)

DEFAULT_PAGE_SIZE = 10


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Expense Tracker", version=APP_VERSION)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    create_schema()


def current_user_id(request: Request, db: Session = Depends(get_db)) -> int:
    token = request.cookies.get(get_settings().session_cookie)
    user_id = read_session_token(token)
    if user_id is None or UserService(db).get(user_id) is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def period_from_request(request: Request) -> Optional[Period]:
    period_slug = request.query_params.get("period") or CURRENT_MONTH
    start = request.query_params.get("startDate")
    end = request.query_params.get("endDate")
    return resolve_period(period_slug, start, end)


def filters_from_request(request: Request) -> ExpenseFilters:
    params = request.query_params
    start = params.get("startDate")
    end = params.get("endDate")
    return ExpenseFilters(
        category=params.get("category") or None,
        start=parse_bound(start) if start else None,
        end=parse_bound(end, end=True) if end else None,
    )


def expense_payload(item: AnnotatedExpense) -> dict[str, object]:
    data = ExpenseOut.model_validate(item.expense).model_dump(mode="json")
    data["categoryName"] = item.category_name
    data["categoryColor"] = item.category_color
    return data


@app.post("/auth/signup", response_model=UserOut, status_code=201)
def signup(data: SignUpIn, db: Session = Depends(get_db)):
    try:
        return UserService(db).create(data)
    except DuplicateRecord as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/auth/signin", response_model=UserOut)
def signin(data: SignInIn, response: Response, db: Session = Depends(get_db)):
    user = UserService(db).authenticate(data.email, data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie,
        issue_session_token(user.id),
        max_age=settings.session_max_age_hours * 3600,
        httponly=True,
        samesite="lax",
    )
    logging.info(f"user_signed_in: id={user.id}")
    return user


@app.post("/auth/signout")
def signout(response: Response):
    response.delete_cookie(get_settings().session_cookie)
    return {"message": "Signed out"}


@app.post("/auth/check-email")
def check_email(payload: dict = Body(...), db: Session = Depends(get_db)):
    try:
        data = EmailCheckIn.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors()[0]["msg"]) from exc
    return {"exists": UserService(db).email_exists(data.email)}


@app.get("/auth/me", response_model=UserOut)
def me(db: Session = Depends(get_db), user_id: int = Depends(current_user_id)):
    return UserService(db).get(user_id)


@app.get("/categories", response_model=list[CategoryOut])
def list_categories(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return CategoryService(db, user_id).list_all()


@app.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).create(data)
    except DuplicateRecord as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/categories/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).get(category_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: str,
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).update(category_id, data)
    except DuplicateRecord as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/categories/{category_id}")
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except CategoryInUse as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Category deleted successfully"}


@app.get("/expenses/by-category")
def expenses_by_category(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        period = period_from_request(request)
        totals = MetricsService(db, user_id).category_totals(period)
    except Exception as exc:
        logging.exception("Error fetching category distribution data")
        raise HTTPException(
            status_code=500, detail="Failed to fetch category distribution data"
        ) from exc
    return [total.to_dict() for total in totals]


@app.get("/expenses/by-time")
def expenses_by_time(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    # only daily buckets exist; any other groupBy value falls back to day
    try:
        period = period_from_request(request)
        points = MetricsService(db, user_id).daily_trend(period)
    except Exception as exc:
        logging.exception("Error fetching expense trends data")
        raise HTTPException(
            status_code=500, detail="Failed to fetch expense trends data"
        ) from exc
    return [point.to_dict() for point in points]


@app.get("/expenses/by-month")
def expenses_by_month(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        months = request.query_params.get("months")
        points = MetricsService(db, user_id).monthly_comparison(
            int(months) if months else None
        )
    except Exception as exc:
        logging.exception("Error fetching monthly comparison data")
        raise HTTPException(
            status_code=500, detail="Failed to fetch monthly comparison data"
        ) from exc
    return [point.to_dict() for point in points]


@app.get("/expenses")
def list_expenses(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    params = request.query_params
    paginated = "page" in params or "pageSize" in params
    try:
        filters = filters_from_request(request)
        categories = CategoryService(db, user_id).list_all()
        service = ExpenseService(db, user_id)
        if paginated:
            page = max(int(params.get("page") or "1"), 1)
            page_size = max(int(params.get("pageSize") or DEFAULT_PAGE_SIZE), 1)
            pagination = paginate(service.count(filters), page, page_size)
            items = service.find(
                filters, limit=page_size, offset=pagination.offset
            )
        else:
            limit = params.get("limit")
            items = service.find(filters, limit=int(limit) if limit else None)
        data = [expense_payload(item) for item in annotate_expenses(items, categories)]
    except Exception as exc:
        logging.exception("Error fetching expenses")
        raise HTTPException(status_code=500, detail="Failed to fetch expenses") from exc

    if paginated:
        return {"data": data, "pagination": pagination.to_dict()}
    return data


@app.post("/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return ExpenseService(db, user_id).create(data)


@app.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return ExpenseService(db, user_id).get(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.put("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: str,
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        return ExpenseService(db, user_id).update(expense_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/expenses/{expense_id}")
def delete_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        ExpenseService(db, user_id).delete(expense_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Expense deleted successfully"}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
