import logging
from rq import Worker
from quizproctor.core.cache import redis_client
from quizproctor.core.config import LOG_LEVEL, RQ_QUEUE
if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    w = Worker([RQ_QUEUE], connection=redis_client)
    w.work(with_scheduler=True)
