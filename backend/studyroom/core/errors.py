# backend/studyroom/core/errors.py

"""
세션/프로필 코어에서 발생하는 예외 모음.

모든 예외는 StudyRoomError를 상속하고, 클라이언트가 종류별로 메시지를
구분할 수 있도록 고유한 ``code`` 값을 가집니다.
HTTP 상태 코드 매핑은 main.py의 exception handler에서 처리합니다.
"""


class StudyRoomError(Exception):
    code = "error"
    message = "Unexpected error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


# --- NotFound ---

class SessionNotFound(StudyRoomError):
    code = "session_not_found"
    message = "Session not found. Please check the room code."


class UserNotFound(StudyRoomError):
    code = "user_not_found"
    message = "User not found"


# --- 참가 불가 상태 ---

class SessionAlreadyStarted(StudyRoomError):
    code = "session_already_started"
    message = "Session already started. Cannot join now."


class SessionEnded(StudyRoomError):
    code = "session_ended"
    message = "Session has ended."


class InvalidSessionState(StudyRoomError):
    """허용되지 않는 상태 전이 (예: active 세션을 다시 start)"""
    code = "invalid_session_state"

    def __init__(self, operation: str, status: str):
        super().__init__(f"Cannot {operation} a session that is {status}")
        self.operation = operation
        self.status = status


# --- 권한 ---

class NotSessionHost(StudyRoomError):
    code = "not_session_host"
    message = "Only the host can do this"


class NotParticipant(StudyRoomError):
    code = "not_participant"
    message = "You are not a participant of this session"


# --- 인프라 ---

class RoomCodeExhausted(StudyRoomError):
    code = "room_code_exhausted"
    message = "Failed to generate unique room code after maximum retries"


class StoreUnavailable(StudyRoomError):
    code = "store_unavailable"
    message = "Database is unavailable"


class ActiveSessionExists(StudyRoomError):
    """
    이미 pending/active 세션에 참여 중. 클라이언트는 이어하기 또는
    나가기(호스트는 취소)를 선택한 뒤 다시 요청해야 합니다.
    """
    code = "active_session_exists"

    def __init__(self, session_id: str):
        super().__init__(f"Already in session {session_id}")
        self.session_id = session_id
