import uuid

import shortuuid


def generate_row_id() -> str:
    return str(uuid.uuid4())


def generate_shortuuid() -> str:
    return shortuuid.uuid()
