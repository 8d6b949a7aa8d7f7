import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from ridesafe.auth.identity import Principal
from ridesafe.routes import admin_code_routes, change_request_routes, profile_routes
from ridesafe.routes.admission_routes import (
    AdmissionFormRequest,
    ApproveAdmissionRequest,
    RejectRequest,
    approve_admission_form,
    get_admin_stats,
    get_my_admission_form,
    list_admission_forms,
    reject_admission_form,
    submit_admission_form,
)

ADMIN = Principal(uid='admin', email='admin@ridesafe.com', email_verified=True)


@pytest.fixture
def form_request(admission_form_data) -> AdmissionFormRequest:
    return AdmissionFormRequest(**{key: value for key, value in admission_form_data.items() if key != 'user_email'})


def test_admission_form_request_trims_and_requires_fields(admission_form_data) -> None:
    fields = {key: value for key, value in admission_form_data.items() if key != 'user_email'}

    assert AdmissionFormRequest(**{**fields, 'student_name': '  John Doe '}).student_name == 'John Doe'
    with pytest.raises(ValidationError):
        AdmissionFormRequest(**{**fields, 'pickup_location': '   '})


def test_admission_form_request_caps_notes(admission_form_data) -> None:
    fields = {key: value for key, value in admission_form_data.items() if key != 'user_email'}

    with pytest.raises(ValidationError):
        AdmissionFormRequest(**{**fields, 'medical_conditions': 'x' * 1001})


def test_approve_request_rejects_negative_amount() -> None:
    with pytest.raises(ValidationError):
        ApproveAdmissionRequest(monthly_amount=-5)


def test_reject_request_requires_reason() -> None:
    with pytest.raises(ValidationError):
        RejectRequest(reason='  ')


def test_submit_then_approve_through_routes(db, principal, make_profile, form_request) -> None:
    make_profile()

    form = submit_admission_form(form_request, principal=principal, db=db)
    assert form.status == 'pending'
    assert get_my_admission_form(principal=principal, db=db).id == form.id

    approved = approve_admission_form(form.id, ApproveAdmissionRequest(monthly_amount=2500), admin=ADMIN, db=db)

    assert approved.status == 'approved'
    assert approved.reviewed_by == 'admin@ridesafe.com'
    assert [item.id for item in list_admission_forms(status_filter='approved', _admin=ADMIN, db=db)] == [form.id]
    stats = get_admin_stats(_admin=ADMIN, db=db)
    assert stats.approved_admissions == 1
    assert stats.total_revenue == 2500


def test_review_of_missing_form_is_not_found(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        approve_admission_form('missing', ApproveAdmissionRequest(monthly_amount=2500), admin=ADMIN, db=db)

    assert exception_info.value.status_code == 404


def test_second_review_is_conflict(db, principal, form_request) -> None:
    form = submit_admission_form(form_request, principal=principal, db=db)
    reject_admission_form(form.id, RejectRequest(reason='Route not served'), admin=ADMIN, db=db)

    with pytest.raises(HTTPException) as exception_info:
        reject_admission_form(form.id, RejectRequest(reason='Again'), admin=ADMIN, db=db)

    assert exception_info.value.status_code == 409


def test_my_admission_form_missing_is_not_found(db, principal) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_my_admission_form(principal=principal, db=db)

    assert exception_info.value.status_code == 404


def test_list_by_unknown_status_is_bad_request(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_admission_forms(status_filter='archived', _admin=ADMIN, db=db)

    assert exception_info.value.status_code == 400


def test_change_request_routes_submit_and_approve(db, principal, make_profile) -> None:
    profile = make_profile(guardian_phone='+91 11111 11111')
    data = change_request_routes.CreateChangeRequest(
        field='Guardian Phone', old_value='+91 11111 11111', new_value=' +91 99999 00000 ', reason='  ',
    )

    change_request = change_request_routes.submit_change_request(data, principal=principal, db=db)
    assert change_request.reason is None
    assert [item.id for item in change_request_routes.list_my_change_requests(principal=principal, db=db)] == [
        change_request.id
    ]

    approved = change_request_routes.approve_change_request(
        change_request.id, change_request_routes.ApproveChangeRequest(), admin=ADMIN, db=db
    )

    assert approved.status == 'approved'
    db.refresh(profile)
    assert profile.guardian_phone == '+91 99999 00000'


def test_editable_fields_lists_mapped_columns() -> None:
    fields = change_request_routes.list_editable_fields()

    assert fields[0].field == 'Student Name'
    assert {item.column for item in fields} >= {'guardian_phone', 'pickup_location'}


def test_admin_code_routes(db) -> None:
    assert admin_code_routes.validate_admin_code('SCHOOL-42', db=db) == {'valid': False}
    admin_code_routes.add_admin_code(admin_code_routes.CreateAdminCodeRequest(code=' SCHOOL-42 '), admin=ADMIN, db=db)
    assert admin_code_routes.validate_admin_code('SCHOOL-42', db=db) == {'valid': True}

    admin_code_routes.deactivate_admin_code('SCHOOL-42', _admin=ADMIN, db=db)
    assert admin_code_routes.validate_admin_code('SCHOOL-42', db=db) == {'valid': False}

    with pytest.raises(HTTPException) as exception_info:
        admin_code_routes.delete_admin_code('NOPE', _admin=ADMIN, db=db)
    assert exception_info.value.status_code == 404


def test_profile_routes_read_and_update_student(db, principal, make_profile) -> None:
    make_profile()

    assert profile_routes.get_student(principal=principal, db=db)['name'] == 'John Doe'

    student = profile_routes.update_student(
        profile_routes.StudentUpdateRequest(updates={'medical_conditions': 'Asthma'}), principal=principal, db=db
    )
    assert student['medical_conditions'] == 'Asthma'

    with pytest.raises(HTTPException) as exception_info:
        profile_routes.update_student(
            profile_routes.StudentUpdateRequest(updates={'shoe_size': '4'}), principal=principal, db=db
        )
    assert exception_info.value.status_code == 400


@pytest.mark.parametrize('updates', [
    {'admission_status': 'approved'},
    {'monthly_amount': 0},
    {'school': 'Hill View'},
])
def test_guardian_cannot_patch_reviewed_student_fields(db, principal, make_profile, updates: dict) -> None:
    profile = make_profile(school_name='Green Valley School', monthly_amount=2500.0)

    with pytest.raises(HTTPException) as exception_info:
        profile_routes.update_student(profile_routes.StudentUpdateRequest(updates=updates), principal=principal, db=db)

    assert exception_info.value.status_code == 403
    db.refresh(profile)
    assert profile.admission_status == 'none'
    assert profile.monthly_amount == 2500.0
    assert profile.school_name == 'Green Valley School'


def test_admin_can_patch_any_student_field(db, make_profile) -> None:
    profile = make_profile()

    student = profile_routes.update_student_as_admin(
        'Parent@Example.com',
        profile_routes.StudentUpdateRequest(updates={'school': 'Hill View', 'monthly_amount': 1800}),
        admin=ADMIN,
        db=db,
    )

    assert student['school'] == 'Hill View'
    assert student['monthly_amount'] == 1800
    db.refresh(profile)
    assert profile.school_name == 'Hill View'
