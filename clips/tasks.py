import os
from datetime import datetime

from huey import crontab
from huey.contrib.djhuey import periodic_task, task

from clips.service.clip_service import generate_request_id, process_share_link
from clips.service.config import get_max_age_hours, get_media_dir
from clips.service.sweep import sweep_media_dir

GENERIC_ERROR = 'Something went wrong while processing the video.'


def write_log(log_path, message):
    """Append message to log file"""
    if log_path:
        os.makedirs(os.path.dirname(log_path), exist_ok=True)
        with open(log_path, 'a') as f:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
            f.write(f"[{timestamp}] {message}\n")


def request_log_path(request_id):
    return get_media_dir() / 'logs' / f'{request_id}.log'


@task()
def grab_clip(share_link, user_id=None):
    """
    Background task: turn a share link into a delivery file.

    The Huey consumer's worker count bounds how many of these run at once,
    and with it how many browsers and encoders are alive.

    Returns:
        dict: {'success', 'file_path', 'filename'} or {'success', 'error'},
              plus 'log_path' pointing at this request's log
    """
    log_path = request_log_path(generate_request_id())

    def logger(message):
        write_log(log_path, message)

    write_log(log_path, "=== TASK STARTED ===")
    write_log(log_path, f"URL: {share_link}")
    write_log(log_path, f"User: {user_id}")

    try:
        result = process_share_link(share_link, user_id=user_id, logger=logger)
        output = result.as_dict()
    except Exception as e:
        write_log(log_path, f"ERROR: {type(e).__name__}: {e}")
        output = {'success': False, 'error': GENERIC_ERROR}

    write_log(log_path, f"=== TASK FINISHED: {'OK' if output['success'] else 'FAILED'} ===")
    output['log_path'] = str(log_path)
    return output


@periodic_task(crontab(minute='0'))
def sweep_old_files():
    """Hourly: delete deliverables, logs and stale request dirs past the max age"""
    result = sweep_media_dir(get_media_dir(), max_age_hours=get_max_age_hours())
    return len(result.deleted)
