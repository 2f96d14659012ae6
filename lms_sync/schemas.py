from pydantic import BaseModel, Field


class BatchStudentsRequest(BaseModel):
    student_ids: list[str] = Field(min_length=1)


class OneToOneStudentRequest(BaseModel):
    student_id: str


class RecordingImportRequest(BaseModel):
    title: str
    date: str = ''
    course: str | None = None
    batch_id: str | None = None
    instructor: str = ''
    description: str = ''
    video_source: str | None = None
    external_content_id: str | None = None
    youtube_video_url: str | None = None
    youtube_embed_url: str | None = None
    zoom_url: str | None = None
    zoom_passcode: str | None = None
    zoom_recording_id: str | None = None
    drive_id: str | None = None
