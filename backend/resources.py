"""
Collection-level operations behind the HTTP handlers: reference checks and
expansion of stored id references into nested objects.

Expanded shapes:
- Class.departmentId   -> {"id", "name"}
- Faculty.departmentId -> {"id", "name"}
- Student.classId      -> expanded Class (department included)
- Fee.studentId        -> {"id", "name", "studentId"}
A reference to a document that no longer exists expands to None.
"""
from typing import Any, Dict, List, Optional

from database import (
    collection,
    find_document,
    find_documents_by_ids,
    get_documents,
    serialize,
)
from backend.exceptions import MissingIdError, ResourceNotFoundError, DuplicateResourceError
from backend.security import public_user


def require_id(resource_type: str, query_id: Optional[str], payload: Optional[Dict[str, Any]] = None) -> str:
    """Target id from ?id=... or, failing that, the body's "id" field"""
    doc_id = query_id or (payload or {}).get("id")
    if not doc_id:
        raise MissingIdError(resource_type)
    return str(doc_id)


def ensure_exists(collection_name: str, resource_type: str, doc_id: Any) -> Dict[str, Any]:
    """Raw document or ResourceNotFoundError (InvalidIdError for malformed ids)"""
    doc = find_document(collection_name, doc_id, resource_type=resource_type)
    if not doc:
        raise ResourceNotFoundError(resource_type, doc_id)
    return doc


def ensure_unique(collection_name: str, field: str, value: Any, message: str,
                  exclude_id: Any = None) -> None:
    query: Dict[str, Any] = {field: value}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if collection(collection_name).find_one(query):
        raise DuplicateResourceError(message, field)


# ---------- Expansion ----------

def department_ref(dept: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not dept:
        return None
    return {"id": str(dept["_id"]), "name": dept.get("name")}


def expand_classes(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    depts = find_documents_by_ids("department", (d.get("departmentId") for d in docs))
    out = []
    for d in docs:
        item = serialize(d)
        item["departmentId"] = department_ref(depts.get(d.get("departmentId")))
        out.append(item)
    return out


def expand_faculties(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # same reference shape as classes
    return expand_classes(docs)


def expand_students(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    classes = find_documents_by_ids("class", (d.get("classId") for d in docs))
    expanded = {c["id"]: c for c in expand_classes(list(classes.values()))}
    out = []
    for d in docs:
        item = serialize(d)
        item["classId"] = expanded.get(d.get("classId"))
        out.append(item)
    return out


def student_ref(student: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not student:
        return None
    return {"id": str(student["_id"]), "name": student.get("name"), "studentId": student.get("studentId")}


def expand_fees(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    students = find_documents_by_ids("student", (d.get("studentId") for d in docs))
    out = []
    for d in docs:
        item = serialize(d)
        item["studentId"] = student_ref(students.get(d.get("studentId")))
        out.append(item)
    return out


# ---------- Listing ----------

def department_documents() -> List[Dict[str, Any]]:
    return [serialize(d) for d in get_documents("department")]


def class_documents() -> List[Dict[str, Any]]:
    return expand_classes(get_documents("class"))


def faculty_documents() -> List[Dict[str, Any]]:
    return expand_faculties(get_documents("faculty"))


def student_documents() -> List[Dict[str, Any]]:
    return expand_students(get_documents("student"))


def user_documents() -> List[Dict[str, Any]]:
    return [public_user(d) for d in get_documents("user")]


def fee_documents() -> List[Dict[str, Any]]:
    return expand_fees(get_documents("fee"))


def expanded_one(collection_name: str, doc_id: Any) -> Dict[str, Any]:
    """Re-read a single document and expand it the way its list endpoint does"""
    doc = find_document(collection_name, doc_id)
    expanders = {
        "department": lambda docs: [serialize(d) for d in docs],
        "class": expand_classes,
        "faculty": expand_faculties,
        "student": expand_students,
        "user": lambda docs: [public_user(d) for d in docs],
        "fee": expand_fees,
    }
    return expanders[collection_name]([doc])[0]
