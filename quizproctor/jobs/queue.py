from rq import Queue
from quizproctor.core.cache import redis_client
from quizproctor.core.config import RQ_QUEUE
queue = Queue(RQ_QUEUE, connection=redis_client)
