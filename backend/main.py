import os
import asyncio
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, Literal, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from starlette.concurrency import run_in_threadpool

import database
from database import create_document, delete_document, update_document
from schemas import (
    COLLECTIONS,
    Department as DepartmentSchema,
    DepartmentUpdate,
    Class as ClassSchema,
    ClassUpdate,
    Faculty as FacultySchema,
    FacultyUpdate,
    Student as StudentSchema,
    StudentUpdate,
    User as UserSchema,
    UserUpdate,
    Fee as FeeSchema,
    FeeUpdate,
    LoginRequest,
    STUDENT_ID_ERROR,
    derive_fee_status,
)
from backend.config import settings
from backend.exceptions import PayloadValidationError, ResourceNotFoundError, SchoolAdminError
from backend.logging_config import logger
from backend.middleware import RequestLoggingMiddleware
from backend.reports import (
    FeeFilter,
    build_report,
    export_filename,
    export_workbook,
    render_print_html,
)
from backend.resources import (
    class_documents,
    department_documents,
    ensure_exists,
    ensure_unique,
    expanded_one,
    faculty_documents,
    fee_documents,
    require_id,
    student_documents,
    user_documents,
)
from backend.security import (
    SessionContext,
    authenticate,
    close_session,
    get_password_hash,
    open_session,
    public_user,
    require_session,
    seed_admin,
)
from backend.validation import errors_by_field, update_changes, validate_payload


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
    if database.db is not None:
        try:
            await run_in_threadpool(seed_admin)
        except Exception as e:
            logger.error(f"[Startup] Admin seeding failed: {e}")
    yield
    logger.info(f"Shutting down {settings.APP_NAME}")
    database.close_db()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


@app.exception_handler(SchoolAdminError)
async def school_admin_error_handler(request: Request, exc: SchoolAdminError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = errors_by_field(exc.errors())
    return JSONResponse(status_code=400, content=PayloadValidationError(list(errors), errors).to_dict())


@app.get("/")
def root():
    return {"message": f"{settings.APP_NAME} running"}


# ---------- Auth ----------
@app.post("/auth/login")
def login(payload: Dict[str, Any] = Body(...)):
    creds = validate_payload(LoginRequest, payload).unwrap()
    user = authenticate(creds.email, creds.password)
    session = open_session(user)
    return {"token": session.token, "user": public_user(user)}


@app.post("/auth/logout")
def logout(session: SessionContext = Depends(require_session)):
    close_session(session)
    return {"success": True}


@app.get("/auth/me")
def me(session: SessionContext = Depends(require_session)):
    return {"user": public_user(session.user)}


# ---------- Departments ----------
@app.get("/departments")
def list_departments(session: SessionContext = Depends(require_session)):
    return department_documents()


@app.post("/departments", status_code=201)
def create_department(payload: Dict[str, Any] = Body(...), session: SessionContext = Depends(require_session)):
    dept = validate_payload(DepartmentSchema, payload).unwrap()
    ensure_unique("department", "name", dept.name, "Department name already exists")
    did = create_document("department", dept)
    return expanded_one("department", did)


@app.put("/departments")
def update_department(
    payload: Dict[str, Any] = Body(...),
    doc_id: Optional[str] = Query(None, alias="id"),
    session: SessionContext = Depends(require_session),
):
    dept_id = require_id("Department", doc_id, payload)
    existing = ensure_exists("department", "Department", dept_id)
    changes = update_changes(validate_payload(DepartmentUpdate, payload).unwrap())
    if "name" in changes and changes["name"] != existing.get("name"):
        ensure_unique("department", "name", changes["name"], "Department name already exists", existing["_id"])
    update_document("department", existing["_id"], changes)
    return expanded_one("department", existing["_id"])


@app.delete("/departments")
def delete_department(doc_id: Optional[str] = Query(None, alias="id"), session: SessionContext = Depends(require_session)):
    dept_id = require_id("Department", doc_id)
    existing = ensure_exists("department", "Department", dept_id)
    delete_document("department", existing["_id"])
    logger.info(f"Deleted department {dept_id}")
    return {"success": True}


# ---------- Classes ----------
@app.get("/classes")
def list_classes(session: SessionContext = Depends(require_session)):
    return class_documents()


@app.post("/classes", status_code=201)
def create_class(payload: Dict[str, Any] = Body(...), session: SessionContext = Depends(require_session)):
    cls = validate_payload(ClassSchema, payload).unwrap()
    ensure_exists("department", "Department", cls.departmentId)
    cid = create_document("class", cls)
    return expanded_one("class", cid)


@app.put("/classes")
def update_class(
    payload: Dict[str, Any] = Body(...),
    doc_id: Optional[str] = Query(None, alias="id"),
    session: SessionContext = Depends(require_session),
):
    class_id = require_id("Class", doc_id, payload)
    existing = ensure_exists("class", "Class", class_id)
    changes = update_changes(validate_payload(ClassUpdate, payload).unwrap())
    if "departmentId" in changes and changes["departmentId"] != existing.get("departmentId"):
        ensure_exists("department", "Department", changes["departmentId"])
    update_document("class", existing["_id"], changes)
    return expanded_one("class", existing["_id"])


@app.delete("/classes")
def delete_class(doc_id: Optional[str] = Query(None, alias="id"), session: SessionContext = Depends(require_session)):
    class_id = require_id("Class", doc_id)
    existing = ensure_exists("class", "Class", class_id)
    delete_document("class", existing["_id"])
    logger.info(f"Deleted class {class_id}")
    return {"success": True}


# ---------- Faculties ----------
@app.get("/faculties")
def list_faculties(session: SessionContext = Depends(require_session)):
    return faculty_documents()


@app.post("/faculties", status_code=201)
def create_faculty(payload: Dict[str, Any] = Body(...), session: SessionContext = Depends(require_session)):
    faculty = validate_payload(FacultySchema, payload).unwrap()
    ensure_exists("department", "Department", faculty.departmentId)
    fid = create_document("faculty", faculty)
    return expanded_one("faculty", fid)


@app.put("/faculties")
def update_faculty(
    payload: Dict[str, Any] = Body(...),
    doc_id: Optional[str] = Query(None, alias="id"),
    session: SessionContext = Depends(require_session),
):
    faculty_id = require_id("Faculty", doc_id, payload)
    existing = ensure_exists("faculty", "Faculty", faculty_id)
    changes = update_changes(validate_payload(FacultyUpdate, payload).unwrap())
    if "departmentId" in changes and changes["departmentId"] != existing.get("departmentId"):
        ensure_exists("department", "Department", changes["departmentId"])
    update_document("faculty", existing["_id"], changes)
    return expanded_one("faculty", existing["_id"])


@app.delete("/faculties")
def delete_faculty(doc_id: Optional[str] = Query(None, alias="id"), session: SessionContext = Depends(require_session)):
    faculty_id = require_id("Faculty", doc_id)
    existing = ensure_exists("faculty", "Faculty", faculty_id)
    delete_document("faculty", existing["_id"])
    logger.info(f"Deleted faculty {faculty_id}")
    return {"success": True}


# ---------- Students ----------
@app.get("/students")
def list_students(session: SessionContext = Depends(require_session)):
    return student_documents()


@app.post("/students", status_code=201)
def create_student(payload: Dict[str, Any] = Body(...), session: SessionContext = Depends(require_session)):
    student = validate_payload(StudentSchema, payload).unwrap()
    ensure_exists("class", "Class", student.classId)
    ensure_unique("student", "studentId", student.studentId, "Student ID already in use")
    sid = create_document("student", student)
    return expanded_one("student", sid)


@app.put("/students")
def update_student(
    payload: Dict[str, Any] = Body(...),
    doc_id: Optional[str] = Query(None, alias="id"),
    session: SessionContext = Depends(require_session),
):
    student_id = require_id("Student", doc_id, payload)
    existing = ensure_exists("student", "Student", student_id)
    changes = update_changes(validate_payload(StudentUpdate, payload).unwrap())
    if "classId" in changes and changes["classId"] != existing.get("classId"):
        ensure_exists("class", "Class", changes["classId"])
    if "studentId" in changes and changes["studentId"] != existing.get("studentId"):
        ensure_unique("student", "studentId", changes["studentId"], "Student ID already in use", existing["_id"])
    update_document("student", existing["_id"], changes)
    return expanded_one("student", existing["_id"])


@app.delete("/students")
def delete_student(doc_id: Optional[str] = Query(None, alias="id"), session: SessionContext = Depends(require_session)):
    student_id = require_id("Student", doc_id)
    existing = ensure_exists("student", "Student", student_id)
    delete_document("student", existing["_id"])
    logger.info(f"Deleted student {student_id}")
    return {"success": True}


# ---------- Users ----------
def _ensure_student_number(student_number: Optional[int]) -> None:
    if student_number is not None and not database.collection("student").find_one({"studentId": student_number}):
        raise ResourceNotFoundError("Student", student_number)


@app.get("/users")
def list_users(session: SessionContext = Depends(require_session)):
    return user_documents()


@app.post("/users", status_code=201)
def create_user(payload: Dict[str, Any] = Body(...), session: SessionContext = Depends(require_session)):
    user = validate_payload(UserSchema, payload).unwrap()
    ensure_unique("user", "email", user.email, "Email already in use")
    _ensure_student_number(user.studentId)
    doc = user.model_dump() | {"password": get_password_hash(user.password)}
    uid = create_document("user", doc)
    logger.info(f"Created user {uid} ({user.title})")
    return expanded_one("user", uid)


@app.put("/users")
def update_user(
    payload: Dict[str, Any] = Body(...),
    doc_id: Optional[str] = Query(None, alias="id"),
    session: SessionContext = Depends(require_session),
):
    user_id = require_id("User", doc_id, payload)
    existing = ensure_exists("user", "User", user_id)
    changes = update_changes(validate_payload(UserUpdate, payload).unwrap())
    if "email" in changes and changes["email"] != existing.get("email"):
        ensure_unique("user", "email", changes["email"], "Email already in use", existing["_id"])
    merged = existing | changes
    if merged.get("title") == "student" and merged.get("studentId") is None:
        raise PayloadValidationError(["studentId"], {"studentId": STUDENT_ID_ERROR})
    if "studentId" in changes and changes["studentId"] != existing.get("studentId"):
        _ensure_student_number(changes["studentId"])
    if "password" in changes:
        changes["password"] = get_password_hash(changes["password"])
    update_document("user", existing["_id"], changes)
    return expanded_one("user", existing["_id"])


@app.delete("/users")
def delete_user(doc_id: Optional[str] = Query(None, alias="id"), session: SessionContext = Depends(require_session)):
    user_id = require_id("User", doc_id)
    existing = ensure_exists("user", "User", user_id)
    delete_document("user", existing["_id"])
    database.collection("session").delete_many({"userId": str(existing["_id"])})
    logger.info(f"Deleted user {user_id}")
    return {"success": True}


# ---------- Fees ----------
@app.get("/fees")
def list_fees(session: SessionContext = Depends(require_session)):
    return fee_documents()


@app.post("/fees", status_code=201)
def create_fee(payload: Dict[str, Any] = Body(...), session: SessionContext = Depends(require_session)):
    fee = validate_payload(FeeSchema, payload).unwrap()
    ensure_exists("student", "Student", fee.studentId)
    doc = fee.model_dump()
    if doc["balance"] is None:
        doc["balance"] = fee.amount - fee.amountPaid
    if doc["status"] is None:
        doc["status"] = derive_fee_status(fee.amount, fee.amountPaid)
    fid = create_document("fee", doc)
    return expanded_one("fee", fid)


@app.put("/fees")
def update_fee(
    payload: Dict[str, Any] = Body(...),
    doc_id: Optional[str] = Query(None, alias="id"),
    session: SessionContext = Depends(require_session),
):
    fee_id = require_id("Fee", doc_id, payload)
    existing = ensure_exists("fee", "Fee", fee_id)
    changes = update_changes(validate_payload(FeeUpdate, payload).unwrap())
    if "studentId" in changes and changes["studentId"] != existing.get("studentId"):
        ensure_exists("student", "Student", changes["studentId"])
    # amounts moved without an explicit balance/status: refill them from the merged values
    if "amount" in changes or "amountPaid" in changes:
        amount = changes.get("amount", existing.get("amount") or 0)
        amount_paid = changes.get("amountPaid", existing.get("amountPaid") or 0)
        changes.setdefault("balance", amount - amount_paid)
        changes.setdefault("status", derive_fee_status(amount, amount_paid))
    update_document("fee", existing["_id"], changes)
    return expanded_one("fee", existing["_id"])


@app.delete("/fees")
def delete_fee(doc_id: Optional[str] = Query(None, alias="id"), session: SessionContext = Depends(require_session)):
    fee_id = require_id("Fee", doc_id)
    existing = ensure_exists("fee", "Fee", fee_id)
    delete_document("fee", existing["_id"])
    logger.info(f"Deleted fee {fee_id}")
    return {"success": True}


# ---------- Reports ----------
def report_filter(
    mode: Literal["dateRange", "student", "class"] = Query("dateRange", alias="filter"),
    start: Optional[date] = None,
    end: Optional[date] = None,
    student_id: Optional[str] = Query(None, alias="studentId"),
    class_id: Optional[str] = Query(None, alias="classId"),
) -> FeeFilter:
    return FeeFilter(mode=mode, start=start, end=end, student_id=student_id, class_id=class_id)


async def load_fee_report(selection: FeeFilter):
    fees, students, classes = await asyncio.gather(
        run_in_threadpool(fee_documents),
        run_in_threadpool(student_documents),
        run_in_threadpool(class_documents),
    )
    report = build_report(fees, students, classes, selection)
    logger.info(f"Fee report ({selection.describe()}): {len(report.fees)} of {len(fees)} records")
    return report


@app.get("/reports/fees")
async def fee_report(selection: FeeFilter = Depends(report_filter), session: SessionContext = Depends(require_session)):
    report = await load_fee_report(selection)
    return report.to_dict()


@app.get("/reports/fees/print", response_class=HTMLResponse)
async def fee_report_print(selection: FeeFilter = Depends(report_filter), session: SessionContext = Depends(require_session)):
    report = await load_fee_report(selection)
    return HTMLResponse(render_print_html(report, selection))


@app.get("/reports/fees/export")
async def fee_report_export(selection: FeeFilter = Depends(report_filter), session: SessionContext = Depends(require_session)):
    report = await load_fee_report(selection)
    content = await run_in_threadpool(export_workbook, report)
    return Response(
        content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={export_filename()}"},
    )


# ---------- Utilities ----------
@app.get("/schema")
def get_schema():
    return {"schemas": COLLECTIONS}


@app.get("/test")
def test_database():
    response = {
        "backend": "running",
        "database": "not_configured",
        "database_url": "set" if settings.DATABASE_URL else "not_set",
        "database_name": settings.DATABASE_NAME,
        "collections": []
    }
    if database.db is not None:
        response["database"] = "connected"
        try:
            response["collections"] = database.list_collection_names()[:10]
        except Exception as e:
            response["database"] = "error"
            response["error"] = str(e)[:100]
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run(app, host="0.0.0.0", port=port)
