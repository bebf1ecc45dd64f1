"""
Exception hierarchy for the bill printer service
"""

class PrintServiceError(Exception):
    """Base exception for print service errors"""
    pass

class ValidationError(PrintServiceError):
    """Raised when input validation fails"""
    pass

class PrinterNotFoundError(PrintServiceError):
    """Raised when a printer id is not in the registry"""
    def __init__(self, printer_id):
        self.printer_id = printer_id
        super().__init__(f"Printer {printer_id} not found")

class JobNotFoundError(PrintServiceError):
    """Raised when a job id is not in the queue"""
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Print job {job_id} not found")

class SubmissionError(PrintServiceError):
    """Raised when a document could not be sent to a printer"""
    def __init__(self, message="Failed to print document"):
        super().__init__(message)

class PrinterUnavailableError(SubmissionError):
    """Raised when the target printer is not online at submission time"""
    def __init__(self, printer_id, status):
        self.printer_id = printer_id
        self.status = status
        super().__init__(f"Printer {printer_id} is {status}")
