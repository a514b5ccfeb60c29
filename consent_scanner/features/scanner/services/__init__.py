"""
Scanner Services

Organized by responsibility:

1. browser/ - Browser engine lifecycle
   - browser_session.py: single shared browser, crash detection, contexts

2. pipeline/ - One scan of one website
   - scan_pipeline.py: phases A-G, error classification, crash retry
   - request_recorder.py: network observer (third-party requests, analyzer hooks)
   - url_utils.py: URL normalization, first-party check, cookie merge

3. analyzers/ - Evidence collectors and their issue rules
   - base.py: collaborator protocols and the per-run ScanAnalyzers set
   - cookie.py, tracker.py, consent.py, privacy_policy.py,
     security.py, form.py, data_transfer.py, technology.py

4. issues/ - Pure rule pass over the evidence
   - issue_generator.py: all issues for a scan
   - score_calculator.py: overall risk and 0-100 score

5. report/ - Persistence of finished scans
   - report_writer.py: ScanResult -> scan_reports / report_issues

6. queue/ - Job queue and its two backends
   - job_store.py: scan_jobs access, conditional state transitions
   - job_runner.py: claimed job -> pipeline -> report -> terminal state
   - polling_queue.py: in-process worker polling the table
   - dispatch_queue.py: Celery-dispatched variant
   - interface.py / factory.py: QueueService contract and backend selection
"""
