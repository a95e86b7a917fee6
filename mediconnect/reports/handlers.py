"""
Report Handlers (Business Logic Layer)

Report pipelines implementing the business logic layer. Every report type
shares one shape (fetch records, summarize them, project rows) and differs
only in the relations it loads, the fields it projects and the aggregations
it runs. Independent reads inside a pipeline are fanned out on a thread pool
and joined back by identity before aggregation.

Author: MediConnect Team
"""

import calendar
import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Hashable, List, NamedTuple, Optional

from .aggregations import (
    NOT_AVAILABLE,
    age_from_birth_date,
    age_histogram,
    format_amount,
    group_by_field,
    grouped_totals,
    sum_amounts,
    top_n,
)
from .filters import Condition, Predicate, build_predicate, date_range_condition, has_date_range
from .models import Period, Report, ReportFilters
from .service import Join, ReportService

logger = logging.getLogger(__name__)

PAID_STATUSES = ('paid', 'partially_paid')
PENDING_STATUS = 'pending'
COMPLETED_STATUS = 'completed'
NO_SHOW_STATUS = 'no_show'

DEFAULT_TOP_N = 10
DEFAULT_MAX_WORKERS = 8


def run_concurrently(tasks: Dict[Hashable, Callable[[], Any]], max_workers: int) -> Dict[Hashable, Any]:
    """
    Run independent tasks on a thread pool and return results keyed by task key.

    Results are correlated by key, never by completion order. The first
    failure cancels the tasks that have not started yet and is re-raised;
    no partial result is returned.
    """
    if not tasks:
        return {}

    results: Dict[Hashable, Any] = {}
    workers = max(1, min(max_workers, len(tasks)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_key = {executor.submit(task): key for key, task in tasks.items()}

        for future in as_completed(future_to_key):
            key = future_to_key[future]
            try:
                results[key] = future.result()
            except Exception:
                logger.error(f"Sub-fetch {key!r} failed; abandoning sibling fetches", exc_info=True)
                for pending in future_to_key:
                    pending.cancel()
                raise

    return results


def _related(record: Dict[str, Any], relation: str, field: str, default=NOT_AVAILABLE):
    """Field of a nested relation, or the default when the relation is missing"""
    related = record.get(relation)
    return related.get(field) if related else default


def _period(filters: ReportFilters) -> Optional[Period]:
    if has_date_range(filters):
        return Period(date_from=filters.date_from, date_to=filters.date_to)
    return None


class ReportPipeline:
    """Shared shape of all report types: fetch → summarize → project"""

    report_type: str = ""

    def __init__(self, service: ReportService, max_workers: int = DEFAULT_MAX_WORKERS,
                 top_n_limit: int = DEFAULT_TOP_N):
        self.service = service
        self.max_workers = max_workers
        self.top_n_limit = top_n_limit

    def fetch(self, filters: ReportFilters):
        raise NotImplementedError

    def summarize(self, records, filters: ReportFilters) -> Dict[str, Any]:
        raise NotImplementedError

    def project(self, records) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def generate(self, filters: ReportFilters) -> Report:
        """Build the complete report; any fetch failure propagates"""
        try:
            records = self.fetch(filters)
            generated_at = datetime.now(timezone.utc)
            summary = self.summarize(records, filters)
            data = self.project(records)
        except Exception as e:
            logger.error(f"Failed to generate {self.report_type} report: {e}", exc_info=True)
            raise

        logger.info(f"Generated {self.report_type} report with {len(data)} rows")
        return Report(
            report_type=self.report_type,
            period=_period(filters),
            generated_at=generated_at,
            summary=summary,
            data=data,
        )


class AppointmentsReport(ReportPipeline):
    """Appointments by status, type and doctor"""

    report_type = "appointments"

    def fetch(self, filters: ReportFilters) -> List[Dict[str, Any]]:
        return self.service.fetch(
            'appointments',
            build_predicate('appointments', filters),
            joins=(
                Join('patient', 'patients', 'patient_id',
                     attributes=('name', 'cpf', 'phone', 'health_insurance')),
                Join('doctor', 'doctors', 'doctor_id',
                     attributes=('name', 'crm', 'specialty')),
            ),
            order=(('appointment_date', 'DESC'), ('appointment_time', 'DESC')),
        )

    def summarize(self, records, filters):
        total = len(records)
        by_status = group_by_field(records, 'status')
        no_show_count = by_status.get(NO_SHOW_STATUS, 0)
        no_show_rate = Decimal(no_show_count * 100) / Decimal(total) if total else Decimal(0)
        return {
            "total": total,
            "by_status": by_status,
            "by_type": group_by_field(records, 'appointment_type'),
            "by_doctor": group_by_field(records, 'doctor.name'),
            "no_show_count": no_show_count,
            "no_show_rate": f"{format_amount(no_show_rate)}%",
        }

    def project(self, records):
        return [
            {
                "id": apt['id'],
                "date": apt['appointment_date'],
                "time": apt['appointment_time'],
                "patient": _related(apt, 'patient', 'name'),
                "patient_cpf": _related(apt, 'patient', 'cpf'),
                "patient_phone": _related(apt, 'patient', 'phone'),
                "doctor": _related(apt, 'doctor', 'name'),
                "doctor_crm": _related(apt, 'doctor', 'crm'),
                "specialty": _related(apt, 'doctor', 'specialty'),
                "status": apt['status'],
                "type": apt['appointment_type'],
                "duration": apt['duration'],
                "price": apt['price'],
            }
            for apt in records
        ]


class FinancialRecords(NamedTuple):
    settled: List[Dict[str, Any]]
    pending: List[Dict[str, Any]]


class FinancialReport(ReportPipeline):
    """Revenue, discounts and outstanding balance"""

    report_type = "financial"

    def fetch(self, filters: ReportFilters) -> FinancialRecords:
        settled_predicate = build_predicate(
            'payments', filters,
            base_conditions=[Condition('payment_status', 'in', PAID_STATUSES)]
        )
        # Outstanding balance is point-in-time; not restricted by the range
        pending_predicate = Predicate((Condition('payment_status', 'eq', PENDING_STATUS),))

        results = run_concurrently({
            'settled': lambda: self.service.fetch(
                'payments',
                settled_predicate,
                joins=(
                    Join('patient', 'patients', 'patient_id', attributes=('name', 'cpf')),
                    Join('appointment', 'appointments', 'appointment_id',
                         joins=(Join('doctor', 'doctors', 'doctor_id', attributes=('name', 'specialty')),)),
                    Join('health_insurance', 'health_insurances', 'health_insurance_id', attributes=('name',)),
                ),
                order=(('payment_date', 'DESC'),),
            ),
            'pending': lambda: self.service.fetch(
                'payments',
                pending_predicate,
                projection=('amount', 'payment_status'),
            ),
        }, self.max_workers)

        return FinancialRecords(settled=results['settled'], pending=results['pending'])

    def summarize(self, records: FinancialRecords, filters):
        total_revenue = sum_amounts(records.settled, 'amount_paid')
        total_discounts = sum_amounts(records.settled, 'discount')
        total_pending = sum_amounts(records.pending, 'amount')
        return {
            "total_revenue": format_amount(total_revenue),
            "total_discounts": format_amount(total_discounts),
            "net_revenue": format_amount(total_revenue - total_discounts),
            "total_pending": format_amount(total_pending),
            "total_transactions": len(records.settled),
            "by_payment_method": grouped_totals(records.settled, 'payment_method', 'amount_paid'),
            "by_doctor": grouped_totals(records.settled, 'appointment.doctor.name', 'amount_paid',
                                        skip_missing=True),
        }

    def project(self, records: FinancialRecords):
        rows = []
        for payment in records.settled:
            appointment = payment.get('appointment') or {}
            rows.append({
                "id": payment['id'],
                "date": payment['payment_date'],
                "patient": _related(payment, 'patient', 'name'),
                "patient_cpf": _related(payment, 'patient', 'cpf'),
                "doctor": _related(appointment, 'doctor', 'name'),
                "amount": format_amount(payment['amount']),
                "amount_paid": format_amount(payment['amount_paid']),
                "discount": format_amount(payment['discount']),
                "payment_method": payment['payment_method'],
                "health_insurance": _related(payment, 'health_insurance', 'name', default=None),
                "receipt_number": payment['receipt_number'],
            })
        return rows


class PatientsReport(ReportPipeline):
    """Active patients by gender, age band and insurer"""

    report_type = "patients"

    def __init__(self, service: ReportService, max_workers: int = DEFAULT_MAX_WORKERS,
                 top_n_limit: int = DEFAULT_TOP_N, today: Optional[date] = None):
        super().__init__(service, max_workers, top_n_limit)
        self.today = today

    def age_of(self, patient: Dict[str, Any]) -> Optional[int]:
        return age_from_birth_date(patient.get('birth_date'), self.today)

    def fetch(self, filters: ReportFilters) -> List[Dict[str, Any]]:
        return self.service.fetch(
            'patients',
            Predicate((Condition('is_active', 'eq', 1),)),
            order=(('name', 'ASC'),),
        )

    def summarize(self, records, filters):
        by_insurance = group_by_field(records, 'health_insurance')
        without_insurance = by_insurance.get(NOT_AVAILABLE, 0)
        return {
            "total": len(records),
            "by_gender": group_by_field(records, 'gender'),
            "by_age": age_histogram(records, self.age_of),
            "top_insurances": [list(entry) for entry in top_n(by_insurance, self.top_n_limit)],
            "with_insurance": len(records) - without_insurance,
            "without_insurance": without_insurance,
        }

    def project(self, records):
        return [
            {
                "id": p['id'],
                "name": p['name'],
                "cpf": p['cpf'],
                "birth_date": p['birth_date'],
                "age": self.age_of(p),
                "gender": p['gender'],
                "phone": p['phone'],
                "email": p['email'],
                "health_insurance": p['health_insurance'],
                "registration_date": p['registration_date'],
                "total_appointments": p['total_appointments'],
                "last_appointment": p['last_appointment_date'],
            }
            for p in records
        ]


class DoctorRecords(NamedTuple):
    doctors: List[Dict[str, Any]]
    performance: Optional[List[Dict[str, Any]]]


class DoctorsReport(ReportPipeline):
    """Active doctors by specialty, with per-doctor performance for a date range"""

    report_type = "doctors"

    def fetch(self, filters: ReportFilters) -> DoctorRecords:
        doctors = self.service.fetch(
            'doctors',
            Predicate((Condition('is_active', 'eq', 1),)),
            order=(('name', 'ASC'),),
        )
        performance = self.fetch_performance(doctors, filters) if has_date_range(filters) else None
        return DoctorRecords(doctors=doctors, performance=performance)

    def fetch_performance(self, doctors: List[Dict[str, Any]], filters: ReportFilters) -> List[Dict[str, Any]]:
        """Completed appointments and revenue per doctor, fetched concurrently"""
        in_range = date_range_condition('appointments', filters)
        tasks: Dict[Hashable, Callable[[], Any]] = {}

        for doctor in doctors:
            doctor_id = doctor['id']
            completed = Predicate((
                Condition('doctor_id', 'eq', doctor_id),
                in_range,
                Condition('status', 'eq', COMPLETED_STATUS),
            ))
            revenue_join = Join(
                'appointment', 'appointments', 'appointment_id',
                predicate=Predicate((Condition('doctor_id', 'eq', doctor_id), in_range)),
                required=True,
            )
            settled = Predicate((Condition('payment_status', 'in', PAID_STATUSES),))

            tasks[(doctor_id, 'appointments')] = (
                lambda p=completed: self.service.count('appointments', p)
            )
            tasks[(doctor_id, 'revenue')] = (
                lambda p=settled, j=revenue_join: self.service.sum('payments', 'amount_paid', p, joins=(j,))
            )

        results = run_concurrently(tasks, self.max_workers)

        return [
            {
                "doctor_id": doctor['id'],
                "doctor_name": doctor['name'],
                "specialty": doctor['specialty'],
                "appointments_completed": results[(doctor['id'], 'appointments')],
                "revenue_generated": format_amount(results[(doctor['id'], 'revenue')]),
            }
            for doctor in doctors
        ]

    def summarize(self, records: DoctorRecords, filters):
        summary = {
            "total": len(records.doctors),
            "by_specialty": group_by_field(records.doctors, 'specialty'),
        }
        if records.performance is not None:
            summary["performance"] = records.performance
        return summary

    def project(self, records: DoctorRecords):
        return [
            {
                "id": d['id'],
                "name": d['name'],
                "crm": f"{d['crm']}/{d['crm_state']}",
                "specialty": d['specialty'],
                "sub_specialties": json_list(d['sub_specialties']),
                "email": d['email'],
                "phone": d['phone'],
                "consultation_price": d['consultation_price'],
                "consultation_duration": d['consultation_duration'],
                "accepts_health_insurance": bool(d['accepts_health_insurance']),
            }
            for d in records.doctors
        ]


def json_list(value) -> List[Any]:
    """
    List stored as JSON text. Plain non-JSON text is a single item; null or
    blank is empty.
    """
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            value = json.loads(value)
        except ValueError:
            return [value]
    return value if isinstance(value, list) else [value]


def has_prescription(record: Dict[str, Any]) -> bool:
    return bool(record.get('prescription')) or bool(json_list(record.get('medications_prescribed')))


def has_tests_requested(record: Dict[str, Any]) -> bool:
    return bool(record.get('lab_tests_requested') or record.get('imaging_requested'))


class MedicalRecordsReport(ReportPipeline):
    """Medical records by status and most common diagnoses"""

    report_type = "medical-records"

    def fetch(self, filters: ReportFilters) -> List[Dict[str, Any]]:
        return self.service.fetch(
            'medical_records',
            build_predicate('medical_records', filters),
            joins=(
                Join('patient', 'patients', 'patient_id', attributes=('name', 'cpf')),
                Join('doctor', 'doctors', 'doctor_id', attributes=('name', 'specialty')),
            ),
            order=(('consultation_date', 'DESC'),),
        )

    def summarize(self, records, filters):
        diagnosed = [r for r in records if r.get('diagnosis_primary')]
        diagnosis_count = group_by_field(diagnosed, 'diagnosis_primary')
        return {
            "total": len(records),
            "by_status": group_by_field(records, 'record_status'),
            "common_diagnoses": [
                {"diagnosis": diagnosis, "count": count}
                for diagnosis, count in top_n(diagnosis_count, self.top_n_limit)
            ],
        }

    def project(self, records):
        return [
            {
                "id": r['id'],
                "consultation_date": r['consultation_date'],
                "patient": _related(r, 'patient', 'name'),
                "patient_cpf": _related(r, 'patient', 'cpf'),
                "doctor": _related(r, 'doctor', 'name'),
                "specialty": _related(r, 'doctor', 'specialty'),
                "chief_complaint": r['chief_complaint'],
                "diagnosis_primary": r['diagnosis_primary'],
                "record_status": r['record_status'],
                "has_prescription": has_prescription(r),
                "has_tests_requested": has_tests_requested(r),
            }
            for r in records
        ]


UPCOMING_STATUSES = ('scheduled', 'confirmed')
INACTIVE_APPOINTMENT_STATUSES = ('cancelled', NO_SHOW_STATUS)
CLOSED_PAYMENT_STATUSES = ('paid', 'cancelled', 'refunded')
UPCOMING_WINDOW_DAYS = 7

DASHBOARD_KPIS = (
    'total_patients', 'total_doctors', 'total_users',
    'today_appointments', 'month_appointments', 'completed_appointments',
    'month_revenue', 'pending_payments', 'overdue_payments', 'new_patients_month',
)


class DashboardReport(ReportPipeline):
    """
    Clinic-wide KPIs relative to a reference day (today unless injected).

    Counts cover the reference day and its calendar month; the upcoming
    list covers the next UPCOMING_WINDOW_DAYS days. Caller filters are
    ignored.
    """

    report_type = "dashboard"

    def __init__(self, service: ReportService, max_workers: int = DEFAULT_MAX_WORKERS,
                 top_n_limit: int = DEFAULT_TOP_N, today: Optional[date] = None):
        super().__init__(service, max_workers, top_n_limit)
        self.today = today

    def generate(self, filters: ReportFilters) -> Report:
        return super().generate(ReportFilters())

    def fetch(self, filters: ReportFilters) -> Dict[Hashable, Any]:
        today = self.today or date.today()
        month_start = today.replace(day=1)
        month_end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
        this_month = (month_start, month_end)
        active = Condition('is_active', 'eq', 1)

        def count(entity, *conditions):
            return lambda: self.service.count(entity, Predicate(conditions))

        return run_concurrently({
            'total_patients': count('patients', active),
            'total_doctors': count('doctors', active),
            'total_users': count('users', active),
            'today_appointments': count(
                'appointments',
                Condition('appointment_date', 'eq', today),
                Condition('status', 'not_in', INACTIVE_APPOINTMENT_STATUSES),
            ),
            'month_appointments': count('appointments', Condition('appointment_date', 'between', this_month)),
            'completed_appointments': count(
                'appointments',
                Condition('appointment_date', 'between', this_month),
                Condition('status', 'eq', COMPLETED_STATUS),
            ),
            'month_revenue': lambda: self.service.sum(
                'payments', 'amount_paid',
                Predicate((
                    Condition('payment_date', 'between', this_month),
                    Condition('payment_status', 'in', PAID_STATUSES),
                )),
            ),
            'pending_payments': count('payments', Condition('payment_status', 'eq', PENDING_STATUS)),
            'overdue_payments': count(
                'payments',
                Condition('due_date', 'lt', today),
                Condition('payment_status', 'not_in', CLOSED_PAYMENT_STATUSES),
            ),
            'new_patients_month': count('patients', Condition('registration_date', 'between', this_month)),
            'upcoming': lambda: self.service.fetch(
                'appointments',
                Predicate((
                    Condition('appointment_date', 'between',
                              (today, today + timedelta(days=UPCOMING_WINDOW_DAYS))),
                    Condition('status', 'in', UPCOMING_STATUSES),
                )),
                joins=(
                    Join('patient', 'patients', 'patient_id', attributes=('name', 'phone')),
                    Join('doctor', 'doctors', 'doctor_id', attributes=('name',)),
                ),
                order=(('appointment_date', 'ASC'), ('appointment_time', 'ASC')),
            ),
        }, self.max_workers)

    def summarize(self, records, filters):
        summary = {key: records[key] for key in DASHBOARD_KPIS}
        summary['month_revenue'] = format_amount(records['month_revenue'])
        return summary

    def project(self, records):
        return [
            {
                "id": apt['id'],
                "date": apt['appointment_date'],
                "time": apt['appointment_time'],
                "patient": _related(apt, 'patient', 'name'),
                "patient_phone": _related(apt, 'patient', 'phone'),
                "doctor": _related(apt, 'doctor', 'name'),
                "status": apt['status'],
            }
            for apt in records['upcoming'][:self.top_n_limit]
        ]
