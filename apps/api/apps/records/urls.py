"""
Medical records URLs.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    DashboardView,
    DiagnosisViewSet,
    DoctorViewSet,
    PatientRegistrationView,
    PatientViewSet,
    ReportViewSet,
    SickLeaveViewSet,
    SpecialtyViewSet,
    TreatmentViewSet,
    VisitViewSet,
)

router = DefaultRouter()
router.register(r'specialties', SpecialtyViewSet, basename='specialty')
router.register(r'diagnoses', DiagnosisViewSet, basename='diagnosis')
router.register(r'doctors', DoctorViewSet, basename='doctor')
router.register(r'patients', PatientViewSet, basename='patient')
router.register(r'visits', VisitViewSet, basename='visit')
router.register(r'sick-leaves', SickLeaveViewSet, basename='sick-leave')
router.register(r'treatments', TreatmentViewSet, basename='treatment')
router.register(r'reports', ReportViewSet, basename='report')

urlpatterns = [
    path('me/dashboard/', DashboardView.as_view(), name='me-dashboard'),
    path('me/patient/', PatientRegistrationView.as_view(), name='me-patient'),
    path('', include(router.urls)),
]
