from django.urls import path
from . import views

app_name = 'gradebook'

urlpatterns = [
    # Reports
    path('students/<int:student_id>/terms/<int:term_id>/report/', views.student_report, name='student_report'),
    path('class-terms/<int:class_term_id>/statistics/', views.class_statistics, name='class_statistics'),
    path('class-terms/<int:class_term_id>/results/', views.class_results, name='class_results'),
    path('class-terms/<int:class_term_id>/results/export/', views.class_results_export, name='class_results_export'),
    path('class-terms/<int:class_term_id>/publish/', views.publish_results, name='publish_results'),

    # Transitions
    path('transitions/options/', views.transition_options, name='transition_options'),
    path('transitions/classes/', views.transition_classes, name='transition_classes'),
    path('transitions/class-terms/<int:class_term_id>/students/', views.transition_students, name='transition_students'),
    path('transitions/execute/', views.execute_transitions, name='execute_transitions'),
    path('transitions/history/', views.transition_history, name='transition_history'),
    path('transitions/terms/<int:term_id>/statistics/', views.transition_statistics, name='transition_statistics'),
]
