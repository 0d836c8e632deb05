"""执行结果缓存：内存 / Redis 两种实现"""
