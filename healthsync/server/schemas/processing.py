from typing import List, Optional

from pydantic import BaseModel


class ProcessRequest(BaseModel):
	fileName: Optional[str] = None


class ProcessStartResponse(BaseModel):
	success: bool = True
	processingId: str
	message: str


class ResultMessage(BaseModel):
	message: str


class ProcessingStatusResponse(BaseModel):
	success: bool = True
	status: str
	completed: bool
	error: Optional[str] = None
	progress: Optional[str] = None
	message: Optional[str] = None
	results: Optional[List[ResultMessage]] = None
