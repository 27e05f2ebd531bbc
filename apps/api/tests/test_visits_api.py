"""
API tests for /api/v1/visits/ and its lifecycle actions.
"""
import datetime

import pytest
from rest_framework import status

from apps.records.models import SickLeave, Visit, VisitStatusChoices
from tests.factories import tomorrow

ENDPOINT = '/api/v1/visits/'


def detail(visit_id, action=''):
    url = f'{ENDPOINT}{visit_id}/'
    return f'{url}{action}/' if action else url


@pytest.mark.django_db
class TestStaffCreate:

    def _payload(self, gp, patient, flu, **overrides):
        payload = {
            'patient_id': str(patient.pk),
            'doctor_id': str(gp.pk),
            'diagnosis_id': str(flu.pk),
            'visit_date': '2024-05-01',
            'visit_time': '10:00',
        }
        payload.update(overrides)
        return payload

    def test_create_then_double_book(self, admin_client, gp, patient, flu):
        response = admin_client.post(ENDPOINT, self._payload(gp, patient, flu), format='json')
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == VisitStatusChoices.COMPLETED
        assert response.data['diagnosis_name'] == 'Flu'

        response = admin_client.post(ENDPOINT, self._payload(gp, patient, flu), format='json')
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == 'slot_conflict'

    def test_missing_diagnosis_is_400(self, admin_client, gp, patient, flu):
        payload = self._payload(gp, patient, flu)
        del payload['diagnosis_id']
        response = admin_client.post(ENDPOINT, payload, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_off_slot_time_is_400(self, admin_client, gp, patient, flu):
        response = admin_client.post(ENDPOINT, self._payload(gp, patient, flu, visit_time='10:10'), format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error'] == 'validation_error'

    def test_unknown_doctor_is_404(self, admin_client, gp, patient, flu):
        payload = self._payload(gp, patient, flu, doctor_id='00000000-0000-0000-0000-000000000000')
        response = admin_client.post(ENDPOINT, payload, format='json')
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['error'] == 'not_found'

    def test_patient_cannot_create(self, patient_client, gp, patient, flu):
        response = patient_client.post(ENDPOINT, self._payload(gp, patient, flu), format='json')
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unauthenticated(self, api_client):
        response = api_client.get(ENDPOINT)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_sick_leave_flag(self, doctor_client, gp, patient, flu):
        response = doctor_client.post(
            ENDPOINT, self._payload(gp, patient, flu, sick_leave_issued=True), format='json'
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['sick_leave_issued'] is True
        assert response.data['sick_leave']['duration_days'] == 5


@pytest.mark.django_db
class TestPatientFlow:

    def test_schedule_and_foreign_cancel(self, patient_client, other_patient_client, gp):
        response = patient_client.post(
            f'{ENDPOINT}schedule/',
            {'doctor_id': str(gp.pk), 'visit_date': tomorrow().isoformat(), 'visit_time': '09:00'},
            format='json',
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == VisitStatusChoices.SCHEDULED
        visit_id = response.data['id']

        response = other_patient_client.post(detail(visit_id, 'cancel'))
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['error'] == 'forbidden'

        response = patient_client.post(detail(visit_id, 'cancel'))
        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == VisitStatusChoices.CANCELLED

        response = patient_client.post(detail(visit_id, 'cancel'))
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == 'invalid_transition'

    def test_schedule_in_past_is_400(self, patient_client, gp):
        response = patient_client.post(
            f'{ENDPOINT}schedule/',
            {'doctor_id': str(gp.pk), 'visit_date': '2020-01-01', 'visit_time': '09:00'},
            format='json',
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_doctor_cannot_use_patient_actions(self, doctor_client, scheduled_visit):
        response = doctor_client.post(detail(scheduled_visit.pk, 'cancel'))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_patient_lists_only_own_visits(self, patient_client, gp, patient, other_patient, make_visit):
        own = make_visit(gp, patient, visit_time=datetime.time(9, 0))
        make_visit(gp, other_patient, visit_time=datetime.time(9, 30))

        response = patient_client.get(ENDPOINT)
        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_elements'] == 1
        assert response.data['content'][0]['id'] == str(own.pk)

    def test_patient_cannot_read_foreign_visit(self, other_patient_client, scheduled_visit):
        response = other_patient_client.get(detail(scheduled_visit.pk))
        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestListing:

    def test_envelope_and_sort(self, admin_client, gp, patient, make_visit):
        make_visit(gp, patient, visit_time=datetime.time(11, 0))
        make_visit(gp, patient, visit_time=datetime.time(9, 0))

        response = admin_client.get(ENDPOINT, {'page': 0, 'size': 1})
        assert response.status_code == status.HTTP_200_OK
        assert set(response.data) == {'content', 'total_elements', 'total_pages', 'page_index', 'page_size'}
        assert response.data['total_elements'] == 2
        assert response.data['total_pages'] == 2
        assert response.data['content'][0]['visit_time'] == '09:00:00'

    def test_invalid_sort_field_is_400(self, admin_client):
        response = admin_client.get(ENDPOINT, {'order_by': 'notes'})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error'] == 'invalid_sort_field'

    def test_negative_page_is_400(self, admin_client):
        response = admin_client.get(ENDPOINT, {'page': -1})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_page_past_end(self, admin_client, gp, patient, make_visit):
        make_visit(gp, patient)
        response = admin_client.get(ENDPOINT, {'page': 5, 'size': 10})
        assert response.data['content'] == []
        assert response.data['total_elements'] == 1


@pytest.mark.django_db
class TestUpdateDocumentDelete:

    def test_partial_update(self, admin_client, gp, patient, flu, make_visit):
        visit = make_visit(gp, patient, diagnosis=flu)
        response = admin_client.patch(detail(visit.pk), {'notes': 'Recovered'}, format='json')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['notes'] == 'Recovered'
        assert response.data['diagnosis'] == flu.pk

    def test_terminal_status_change_is_409(self, admin_client, gp, patient, make_visit):
        visit = make_visit(gp, patient, status=VisitStatusChoices.COMPLETED)
        response = admin_client.patch(detail(visit.pk), {'status': 'SCHEDULED'}, format='json')
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error'] == 'invalid_transition'

    def test_document(self, doctor_client, scheduled_visit, flu):
        response = doctor_client.post(
            detail(scheduled_visit.pk, 'document'),
            {
                'diagnosis_id': str(flu.pk),
                'notes': 'Bed rest',
                'sick_leave': {'duration_days': 4},
                'treatment': {
                    'description': 'Antipyretics',
                    'medicines': [{'name': 'Paracetamol', 'dosage': '500mg', 'frequency': '3x daily'}],
                },
            },
            format='json',
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == VisitStatusChoices.COMPLETED
        assert response.data['sick_leave']['duration_days'] == 4
        assert response.data['treatment']['medicines'][0]['name'] == 'Paracetamol'

    def test_delete_and_include_deleted(self, admin_client, doctor_client, gp, patient, make_visit):
        visit = make_visit(gp, patient)
        SickLeave.objects.create(visit=visit, start_date=visit.visit_date, duration_days=2)

        assert doctor_client.delete(detail(visit.pk)).status_code == status.HTTP_403_FORBIDDEN
        assert admin_client.delete(detail(visit.pk)).status_code == status.HTTP_204_NO_CONTENT

        assert admin_client.get(detail(visit.pk)).status_code == status.HTTP_404_NOT_FOUND
        response = admin_client.get(detail(visit.pk), {'include_deleted': 'true'})
        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_deleted'] is True
        assert admin_client.get(ENDPOINT).data['total_elements'] == 0
        assert admin_client.get(ENDPOINT, {'include_deleted': 'true'}).data['total_elements'] == 1

    def test_purge(self, admin_client, gp, patient, make_visit):
        visit = make_visit(gp, patient)
        response = admin_client.delete(detail(visit.pk, 'purge'))
        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not Visit.all_objects.filter(pk=visit.pk).exists()


@pytest.mark.django_db
class TestReportEndpoints:

    RANGE = '/api/v1/reports/visits-by-date-range/'
    DOCTOR_RANGE = '/api/v1/reports/visits-by-doctor-and-date-range/'

    def test_date_range_envelope(self, doctor_client, gp, patient, make_visit):
        make_visit(gp, patient, visit_time=datetime.time(9, 0))
        make_visit(gp, patient, visit_time=datetime.time(9, 30))

        response = doctor_client.get(
            self.RANGE, {'start_date': '2024-05-01', 'end_date': '2024-05-01', 'size': 1}
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_elements'] == 2
        assert response.data['total_pages'] == 2
        assert response.data['content'][0]['visit_time'] == '09:00:00'

    def test_date_range_page_past_end(self, doctor_client, gp, patient, make_visit):
        make_visit(gp, patient)
        response = doctor_client.get(
            self.RANGE, {'start_date': '2024-05-01', 'end_date': '2024-05-31', 'page': 4}
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data['content'] == []
        assert response.data['total_elements'] == 1

    def test_doctor_range(self, doctor_client, gp, specialist, patient, make_visit):
        own = make_visit(gp, patient)
        make_visit(specialist, patient)
        response = doctor_client.get(
            self.DOCTOR_RANGE, {'doctor_id': str(gp.pk), 'start_date': '2024-05-01', 'end_date': '2024-05-01'}
        )
        assert [v['id'] for v in response.data['content']] == [str(own.pk)]

    @pytest.mark.parametrize('doctor_id', [None, ''])
    def test_doctor_range_requires_doctor_id(self, doctor_client, doctor_id):
        params = {'start_date': '2024-05-01', 'end_date': '2024-05-31'}
        if doctor_id is not None:
            params['doctor_id'] = doctor_id
        response = doctor_client.get(self.DOCTOR_RANGE, params)
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error'] == 'validation_error'

    def test_doctor_range_unknown_doctor_is_404(self, doctor_client):
        response = doctor_client.get(self.DOCTOR_RANGE, {
            'doctor_id': '00000000-0000-0000-0000-000000000000',
            'start_date': '2024-05-01',
            'end_date': '2024-05-31',
        })
        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.parametrize('url,flag', [
        ('/api/v1/reports/visit-count-by-doctor/', 'include_cancelled'),
        (ENDPOINT, 'include_deleted'),
        (ENDPOINT, 'ascending'),
    ])
    def test_malformed_flag_is_400(self, admin_client, url, flag):
        response = admin_client.get(url, {flag: 'maybe'})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error'] == 'validation_error'

    def test_include_cancelled_flag(self, admin_client, gp, patient, make_visit):
        make_visit(gp, patient, visit_time=datetime.time(9, 0))
        make_visit(gp, patient, visit_time=datetime.time(9, 30), status=VisitStatusChoices.CANCELLED)

        url = '/api/v1/reports/visit-count-by-doctor/'
        counts = admin_client.get(url).data
        assert counts[0]['visit_count'] == 1
        counts = admin_client.get(url, {'include_cancelled': 'true'}).data
        assert counts[0]['visit_count'] == 2
