"""
Admissions Module

Applicant numbering and the document-requirement lifecycle:
1. Registration mints a unique applicant number ({year}{semesterCode}{seq:05d})
2. Each applicant gets one slot per applicable requirement
3. Slots move empty -> uploaded -> under_review -> verified/rejected
4. The registrar confirms (or reverts) every slot of an applicant at once
5. Every transition is audited and broadcast to live subscribers

Background Jobs (via APScheduler):
- run_consistency_sweep: clears slot references to missing files and
  reports stored files no slot references
"""

from .jobs import register_admission_jobs
from .router import router

__all__ = ["router", "register_admission_jobs"]
